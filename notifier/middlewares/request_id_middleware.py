from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request, Response
from typing import Callable
import uuid
from notifier.utils.context import request_id_context

REQUEST_ID_HEADER = "X-Request-ID"

__all__ = ["RequestIDMiddleware", "REQUEST_ID_HEADER"]


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            request_id = str(uuid.UUID(request.headers.get(REQUEST_ID_HEADER)))
        except (ValueError, TypeError):
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id

        # Context variable feeds get_logger(); reset once the response is built
        token = request_id_context.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_context.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
