"""Correlation ID middleware."""

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation id and, for webhooks, the GitHub delivery id."""

    async def dispatch(self, request: Request, call_next):
        """Process request with correlation ID."""
        correlation_id = request.headers.get("x-correlation-id") or str(uuid.uuid4())
        delivery_id = request.headers.get("x-github-delivery")

        request.state.correlation_id = correlation_id
        request.state.github_delivery_id = delivery_id

        response: Response = await call_next(request)

        response.headers["x-correlation-id"] = correlation_id
        if delivery_id:
            response.headers["x-github-delivery"] = delivery_id

        return response
