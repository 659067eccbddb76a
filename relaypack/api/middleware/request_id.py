import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from relaypack.core.observability.metrics import inc_http


REQUEST_ID_HEADER = "X-Request-Id"


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = rid

        response: Response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        route = request.scope.get("route")
        inc_http(request.method, getattr(route, "path", None) or request.url.path, response.status_code)
        return response
