import hashlib
import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.config import settings

logger = logging.getLogger("courtside.http")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON log line per request, tagged with a short request id.

    Authenticated requests also carry the caller's user id and role, which
    the auth dependency leaves on ``request.state``. ``route`` is the matched
    path template so per-endpoint lines group without the ids in the path.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = (request.headers.get("x-request-id") or str(uuid.uuid4())[:8])[:64]
        request.state.request_id = request_id
        start = time.perf_counter()

        response: Response = await call_next(request)

        route = request.scope.get("route")
        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "route": getattr(route, "path", None),
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            "user_id": getattr(request.state, "user_id", None),
            "role": getattr(request.state, "user_role", None),
            "client_ip_hash": _hash_client(request),
        }

        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, json.dumps(log_data))

        response.headers["X-Request-ID"] = request_id
        return response


def _hash_client(request: Request) -> str | None:
    if not request.client or not request.client.host:
        return None
    return hashlib.sha256(request.client.host.encode()).hexdigest()[:12]


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    # httpx logs every request URL at INFO, including the apiKey query param
    logging.getLogger("httpx").setLevel(logging.WARNING)
