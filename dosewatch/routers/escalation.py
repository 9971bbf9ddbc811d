"""Escalation router.

Entry points for reporting missed doses, signalling that a dose was
taken, and inspecting escalation state.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from dosewatch.routers.dependencies import get_runtime
from dosewatch.schemas.escalation import (
    MEDICATION_ID_MAX_LENGTH,
    CancelResponse,
    EscalationLevelConfig,
    MissedDoseListResponse,
    MissedDoseResponse,
    ReportMissedRequest,
)
from dosewatch.services.missed_dose import MissedDose
from dosewatch.services.runtime import EscalationRuntime

router = APIRouter(prefix="/api/escalations", tags=["escalation"])


def dose_to_response(dose: MissedDose) -> MissedDoseResponse:
    return MissedDoseResponse(
        dose_id=dose.dose_id,
        medication_id=dose.medication_id,
        medication_name=dose.medication_name,
        dosage=dose.dosage,
        scheduled_time=dose.scheduled_time,
        status=dose.status.value,
        current_level=dose.current_level,
        pending_level=dose.pending_level,
        detected_missed_at=dose.detected_missed_at,
        last_action_at=dose.last_action_at,
        next_level_due_at=dose.next_level_due_at,
        resolved_at=dose.resolved_at,
    )


@router.get("", response_model=MissedDoseListResponse)
async def list_escalations(
    include_history: bool = False,
    runtime: EscalationRuntime = Depends(get_runtime),
) -> MissedDoseListResponse:
    """List live escalations, optionally followed by recent terminal ones."""
    doses = runtime.engine.active()
    if include_history:
        doses = doses + list(reversed(runtime.engine.history()))
    return MissedDoseListResponse(
        escalations=[dose_to_response(d) for d in doses],
        count=len(doses),
    )


@router.get("/ladder", response_model=list[EscalationLevelConfig])
async def get_ladder(
    runtime: EscalationRuntime = Depends(get_runtime),
) -> list[EscalationLevelConfig]:
    """Return the configured escalation ladder."""
    return list(runtime.engine.ladder.levels)


@router.get("/{dose_id}", response_model=MissedDoseResponse)
async def get_escalation(
    dose_id: str,
    runtime: EscalationRuntime = Depends(get_runtime),
) -> MissedDoseResponse:
    """Get the escalation state of one dose."""
    dose = runtime.engine.get(dose_id)
    if dose is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No escalation for this dose",
        )
    return dose_to_response(dose)


@router.post(
    "/{dose_id}/missed",
    response_model=MissedDoseResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def report_missed(
    dose_id: str,
    body: ReportMissedRequest,
    runtime: EscalationRuntime = Depends(get_runtime),
) -> MissedDoseResponse:
    """Report a missed dose and start its escalation.

    Returns 409 if the dose is already escalating; the running ladder is
    not restarted. Without a medication id the dose id stands in for it,
    so it must then fit the medication id length.
    """
    if not body.medication_id and len(dose_id) > MEDICATION_ID_MAX_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=(
                f"Dose id longer than {MEDICATION_ID_MAX_LENGTH} characters "
                "needs a medication_id"
            ),
        )

    started = await runtime.engine.report_missed(
        dose_id,
        body.medication_name,
        body.dosage,
        body.scheduled_time,
        medication_id=body.medication_id,
    )
    if not started:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Dose is already escalating",
        )
    return dose_to_response(runtime.engine.get(dose_id))


@router.post("/{dose_id}/taken", response_model=CancelResponse)
async def dose_taken(
    dose_id: str,
    runtime: EscalationRuntime = Depends(get_runtime),
) -> CancelResponse:
    """Signal that a dose was taken. Idempotent."""
    cancelled = runtime.engine.cancel(dose_id)
    return CancelResponse(dose_id=dose_id, cancelled=cancelled)
