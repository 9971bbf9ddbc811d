"""Dose monitor router.

Registers medication schedules with the dose monitor and accepts
"dose taken" confirmations by medication and time slot.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status

from dosewatch.routers.dependencies import get_runtime
from dosewatch.schemas.dose import (
    DoseTakenResponse,
    MedicationScheduleResponse,
    MedicationScheduleUpdate,
)
from dosewatch.services.dose_monitor import MedicationSchedule
from dosewatch.services.runtime import EscalationRuntime

router = APIRouter(prefix="/api/medications", tags=["doses"])


@router.get("/schedules", response_model=list[MedicationScheduleResponse])
async def list_schedules(
    runtime: EscalationRuntime = Depends(get_runtime),
) -> list[MedicationScheduleResponse]:
    """List the medication schedules being watched."""
    return [
        MedicationScheduleResponse(
            medication_id=s.medication_id,
            name=s.name,
            dosage=s.dosage,
            time_slots=list(s.times),
        )
        for s in runtime.monitor.schedules()
    ]


@router.put("/{medication_id}/schedule", response_model=MedicationScheduleResponse)
async def register_schedule(
    medication_id: str,
    body: MedicationScheduleUpdate,
    runtime: EscalationRuntime = Depends(get_runtime),
) -> MedicationScheduleResponse:
    """Watch a medication's daily time slots, replacing any previous schedule."""
    slots = runtime.monitor.register(
        MedicationSchedule(
            medication_id=medication_id,
            name=body.name,
            dosage=body.dosage,
            times=tuple(body.times),
        )
    )
    if not slots:
        runtime.monitor.unregister(medication_id)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No valid time slots in schedule",
        )
    return MedicationScheduleResponse(
        medication_id=medication_id,
        name=body.name,
        dosage=body.dosage,
        time_slots=slots,
    )


@router.delete("/{medication_id}/schedule", status_code=status.HTTP_204_NO_CONTENT)
async def unregister_schedule(
    medication_id: str,
    runtime: EscalationRuntime = Depends(get_runtime),
) -> None:
    """Stop watching a medication."""
    if not runtime.monitor.unregister(medication_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Medication schedule not found",
        )


@router.post("/{medication_id}/doses/{time_slot}/taken", response_model=DoseTakenResponse)
async def confirm_dose_taken(
    medication_id: str,
    time_slot: str,
    dose_date: date | None = None,
    runtime: EscalationRuntime = Depends(get_runtime),
) -> DoseTakenResponse:
    """Confirm a scheduled dose was taken.

    Without a date, the slot's most recent outstanding dose is confirmed,
    falling back to today's.
    """
    try:
        dose_id = runtime.monitor.resolve_dose_id(medication_id, time_slot, dose_date)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    stopped = runtime.monitor.confirm_dose(dose_id)
    return DoseTakenResponse(dose_id=dose_id, stopped=stopped)
