"""
Logging Middleware
Logs every HTTP request with its status and duration
"""

import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from expense_approvals.utils.logger import setup_logger

logger = setup_logger()


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all requests and responses"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        client = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
        except Exception:
            # logger.exception keeps braces in the message from being formatted
            logger.exception(
                f"Error: {request.method} {request.url.path} | "
                f"Duration: {time.perf_counter() - start_time:.3f}s"
            )
            raise

        duration = time.perf_counter() - start_time
        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            f"{request.method} {request.url.path} | Client: {client} | "
            f"Status: {response.status_code} | Duration: {duration:.3f}s"
        )
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response
