import logging
import os

import uvicorn

from relaypack.api.main import app


def serve() -> None:
    logging.basicConfig(
        level=os.getenv("RELAYPACK_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.getenv("RELAYPACK_HOST", "127.0.0.1")
    port = int(os.getenv("RELAYPACK_PORT", "8001"))
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    serve()
