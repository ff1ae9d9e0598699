# backend/portfolio_tracker/utils/context.py
"""
Unit-of-work context: which request or recompute job is running.

A ``WorkContext`` is bound in a context variable for the duration of one
HTTP request (by CorrelationIdMiddleware) or one background recompute job
(by RecomputeOrchestrator). The log filter reads it to stamp every record.

Recompute jobs are linked to the request that caused them:

- ``RecomputeOrchestrator.submit`` calls ``record_recompute_job`` so the
  request's context lists the job IDs it scheduled; the middleware echoes
  them in the ``X-Recompute-Job-ID`` response header.
- The job's own context carries ``recompute_job_id`` and ``triggered_by``
  (the submitting request's correlation ID).

The context object is shared, not copied, when FastAPI runs a sync
handler in its threadpool, so IDs recorded inside the handler are visible
to the middleware afterwards.

Usage:
    from portfolio_tracker.utils.context import WorkContext, bind_context, get_correlation_id

    with bind_context(WorkContext(correlation_id="abc-123")):
        get_correlation_id()  # "abc-123"
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field

_context_var: ContextVar["WorkContext | None"] = ContextVar("work_context", default=None)


@dataclass
class WorkContext:
    """
    State of the current unit of work.

    Attributes:
        correlation_id: Log correlation ID (request header, UUID or recompute-<n>)
        recompute_job_id: Set when this unit of work is a recompute job
        triggered_by: Correlation ID of the request that submitted the job
        submitted_jobs: Recompute job IDs scheduled while handling a request
    """

    correlation_id: str
    recompute_job_id: int | None = None
    triggered_by: str | None = None
    submitted_jobs: list[int] = field(default_factory=list)

    @classmethod
    def for_recompute_job(cls, job_id: int, triggered_by: str | None = None) -> "WorkContext":
        return cls(
            correlation_id=f"recompute-{job_id}",
            recompute_job_id=job_id,
            triggered_by=triggered_by,
        )


@contextmanager
def bind_context(context: WorkContext) -> Iterator[WorkContext]:
    """Make ``context`` current until the block exits."""
    token = _context_var.set(context)
    try:
        yield context
    finally:
        _context_var.reset(token)


def get_context() -> WorkContext | None:
    return _context_var.get()


def get_correlation_id() -> str | None:
    """Correlation ID of the current request or job, or None outside one."""
    context = _context_var.get()
    return context.correlation_id if context is not None else None


def record_recompute_job(job_id: int) -> None:
    """Note a submitted recompute job on the current context (no-op outside one)."""
    context = _context_var.get()
    if context is not None and job_id not in context.submitted_jobs:
        context.submitted_jobs.append(job_id)
