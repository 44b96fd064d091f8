import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_lock_manager
from app.models.class_period import ClassPeriod
from app.models.schedule_entry import ScheduleEntry
from app.models.timetable import Timetable, TimetableStatus
from app.schemas.calendar import day_sort_key
from app.schemas.generation import ScheduleEntryOut
from app.services.audit import log_activity
from app.services.generation_lock import TimetableLockManager

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_timetable(db: Session, timetable_id: str) -> Timetable:
    timetable = db.get(Timetable, timetable_id)
    if timetable is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timetable not found")
    return timetable


@router.get("/timetables/{timetable_id}/entries", response_model=list[ScheduleEntryOut])
def list_schedule_entries(timetable_id: str, db: Session = Depends(get_db)) -> list[ScheduleEntryOut]:
    _get_timetable(db, timetable_id)
    rows = db.execute(
        select(ScheduleEntry, ClassPeriod.ordinal)
        .join(ClassPeriod, ClassPeriod.id == ScheduleEntry.class_period_id)
        .where(ScheduleEntry.timetable_id == timetable_id)
    ).all()
    ordered = sorted(
        rows,
        key=lambda row: (day_sort_key(row[0].day), row[1], row[0].start_time, row[0].class_section_id),
    )
    return [ScheduleEntryOut.model_validate(entry) for entry, _ in ordered]


@router.delete("/timetables/{timetable_id}/entries")
def clear_schedule_entries(
    timetable_id: str,
    db: Session = Depends(get_db),
    lock_manager: TimetableLockManager = Depends(get_lock_manager),
) -> dict:
    timetable = _get_timetable(db, timetable_id)
    if timetable.status == TimetableStatus.published:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Published timetables cannot be regenerated",
        )
    # LockContentionError renders as 409 through the AppError handler.
    with lock_manager.hold(timetable_id):
        result = db.execute(delete(ScheduleEntry).where(ScheduleEntry.timetable_id == timetable_id))
        log_activity(
            db,
            action="timetable.entries.clear",
            school_id=timetable.school_id,
            entity_type="timetable",
            entity_id=timetable_id,
            details={"deleted": result.rowcount},
        )
        db.commit()
    logger.info("Cleared %d schedule entries for timetable %s", result.rowcount, timetable_id)
    return {"success": True, "deleted": result.rowcount}
