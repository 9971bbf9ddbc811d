"""Real-time patient notifications via SSE.

The patient's device keeps this stream open; the escalation engine's
local actions arrive here as events. Acknowledging a notification
counts as taking the dose.
"""

import asyncio
import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from dosewatch.logging_config import get_logger
from dosewatch.routers.dependencies import get_runtime
from dosewatch.schemas.escalation import CancelResponse
from dosewatch.services.local_actions import SessionEventNotifier
from dosewatch.services.runtime import EscalationRuntime

logger = get_logger(__name__)

router = APIRouter(prefix="/api/alerts", tags=["alert-stream"])

HEARTBEAT_INTERVAL_SECONDS = 30


def format_sse_event(event_type: str, data: dict, event_id: str | None = None) -> str:
    """Format data as an SSE event."""
    lines = []
    if event_id:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event_type}")
    lines.append(f"data: {json.dumps(data)}")
    lines.append("")
    return "\n".join(lines) + "\n"


async def generate_notification_stream(
    notifier: SessionEventNotifier,
    request: Request,
    heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
):
    """Async generator yielding SSE events published by the notifier."""
    queue = notifier.subscribe()
    event_counter = 0
    logger.info("Patient notification stream started", sessions=notifier.subscriber_count)

    try:
        while True:
            if await request.is_disconnected():
                logger.info("Patient notification stream disconnected")
                break

            try:
                event: dict[str, Any] = await asyncio.wait_for(
                    queue.get(), timeout=heartbeat_interval
                )
            except TimeoutError:
                yield ": heartbeat\n\n"
                continue

            event_counter += 1
            yield format_sse_event(
                event_type=event["type"],
                data={**event["data"], "sent_at": event["sent_at"]},
                event_id=str(event_counter),
            )
    finally:
        notifier.unsubscribe(queue)


@router.get("/stream")
async def stream_notifications(
    request: Request,
    runtime: EscalationRuntime = Depends(get_runtime),
) -> StreamingResponse:
    """Open the patient's notification stream."""
    return StreamingResponse(
        generate_notification_stream(runtime.notifier, request),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/{dose_id}/acknowledge", response_model=CancelResponse)
async def acknowledge_notification(
    dose_id: str,
    runtime: EscalationRuntime = Depends(get_runtime),
) -> CancelResponse:
    """Patient acknowledged a reminder or missed-dose notification: the dose is taken."""
    cancelled = runtime.monitor.confirm_dose(dose_id)
    logger.info("Missed-dose notification acknowledged", dose_id=dose_id, cancelled=cancelled)
    return CancelResponse(dose_id=dose_id, cancelled=cancelled)
