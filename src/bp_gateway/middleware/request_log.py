"""Per-request id and access log.

An upstream service may pass its own X-Request-ID (scheduler calls into
/internal/v1 do); otherwise a fresh `req_<12 hex>` id is minted. The id is put
on request.state for ApiResponse and echoed back in the response header.

    INFO [internal] POST /internal/v1/settlement/rooms/12 → 200 (41ms) req_a1b2c3d4e5f6
"""

import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("bp.request")

REQUEST_ID_HEADER = "X-Request-ID"
_INTERNAL_PREFIX = "/internal/"
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9_.:-]{1,64}$")


def resolve_request_id(incoming: str | None) -> str:
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return f"req_{uuid.uuid4().hex[:12]}"


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        surface = "internal" if request.url.path.startswith(_INTERNAL_PREFIX) else "api"

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "[%s] %s %s → %d (%.0fms) %s",
            surface,
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
