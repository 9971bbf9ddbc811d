"""Shared router dependencies."""

from fastapi import HTTPException, Request, status

from dosewatch.services.runtime import EscalationRuntime


def get_runtime(request: Request) -> EscalationRuntime:
    """Return the running escalation subsystem, or 503 if it is disabled."""
    runtime: EscalationRuntime | None = getattr(request.app.state, "escalation", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Escalation engine is not running",
        )
    return runtime
