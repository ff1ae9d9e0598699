# backend/portfolio_tracker/middleware/correlation.py
"""
Binds a WorkContext to every request.

The correlation ID comes from X-Correlation-ID, then X-Request-ID, or a
fresh UUID, and is echoed back. When the request scheduled recompute jobs
(a ledger write, a cash account change, an explicit recompute), their IDs
are returned in X-Recompute-Job-ID so a client can poll the job status.
"""

import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from portfolio_tracker.utils.context import WorkContext, bind_context

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"
RECOMPUTE_JOB_HEADER = "X-Recompute-Job-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        context = WorkContext(correlation_id=incoming_correlation_id(request))

        with bind_context(context):
            response = await call_next(request)

        response.headers[CORRELATION_ID_HEADER] = context.correlation_id
        if context.submitted_jobs:
            response.headers[RECOMPUTE_JOB_HEADER] = ",".join(str(j) for j in context.submitted_jobs)
        return response


def incoming_correlation_id(request: Request) -> str:
    return (
        request.headers.get(CORRELATION_ID_HEADER)
        or request.headers.get(REQUEST_ID_HEADER)
        or str(uuid.uuid4())
    )
