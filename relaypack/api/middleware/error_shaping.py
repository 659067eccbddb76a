from __future__ import annotations

import logging
import traceback
from typing import Any, Callable, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from relaypack.core.errors import ConfigurationError, PipelineError

log = logging.getLogger("relaypack.errors")


def _body(detail: str, rid: Optional[str], **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"detail": detail, **extra}
    if rid:
        body["request_id"] = rid
    return body


class SafeErrorMiddleware(BaseHTTPMiddleware):
    """
    Shape errors escaping the routes:
    - ConfigurationError -> 422 with its message
    - PipelineError -> 500 with kind/step only (stderr stays in the logs and run record)
    - anything else -> 500, traceback logged server-side only
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except ConfigurationError as e:
            rid = self._rid(request)
            log.info("rejected request rid=%s path=%s: %s", rid, request.url.path, e)
            return JSONResponse(status_code=422, content=_body(str(e), rid))
        except PipelineError as e:
            rid = self._rid(request)
            log.error("pipeline error rid=%s path=%s run=%s: %s", rid, request.url.path, e.run_id, e)
            return JSONResponse(
                status_code=500,
                content=_body(f"{e.step} step failed", rid, kind=e.kind, run_id=e.run_id),
            )
        except Exception as e:
            rid = self._rid(request)
            log.error(
                "Unhandled error: %s rid=%s path=%s\n%s",
                str(e),
                rid,
                request.url.path,
                traceback.format_exc(),
            )
            return JSONResponse(status_code=500, content=_body("Internal Server Error", rid))

    @staticmethod
    def _rid(request: Request) -> Optional[str]:
        return getattr(request.state, "request_id", None) or request.headers.get("x-request-id")
