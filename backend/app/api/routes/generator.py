from collections.abc import Callable
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_coordinator_factory, get_db, get_job_runner
from app.models.timetable import Timetable
from app.models.timetable_generation import CANCELLABLE_RUN_STATES, TERMINAL_RUN_STATES, TimetableGenerationRun
from app.schemas.generation import DryRunReport, GenerateTimetableRequest, GenerationRunOut
from app.services.generation import GenerationCoordinator
from app.services.generation_jobs import GenerationJobRunner

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/timetables/{timetable_id}/generate",
    response_model=DryRunReport | GenerationRunOut,
    status_code=status.HTTP_202_ACCEPTED,
)
def generate_timetable(
    timetable_id: str,
    payload: GenerateTimetableRequest,
    background_tasks: BackgroundTasks,
    response: Response,
    db: Session = Depends(get_db),
    runner: GenerationJobRunner = Depends(get_job_runner),
    coordinator_factory: Callable[[], GenerationCoordinator] = Depends(get_coordinator_factory),
) -> DryRunReport | GenerationRunOut:
    # Capability checks ("manage timetables for this school") happen before this is reached.
    timetable = db.get(Timetable, timetable_id)
    if timetable is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timetable not found")

    if payload.dry_run:
        summary = coordinator_factory().run(
            timetable_id,
            dry_run=True,
            max_periods_per_teacher_per_day=payload.max_periods_per_teacher_per_day,
        )
        response.status_code = status.HTTP_200_OK
        return DryRunReport.model_validate(summary.as_dict())

    run = runner.enqueue(
        db,
        timetable_id=timetable_id,
        max_periods_per_teacher_per_day=payload.max_periods_per_teacher_per_day,
    )
    background_tasks.add_task(runner.execute, run.id)
    return GenerationRunOut.model_validate(run)


@router.get("/generation-runs/{run_id}", response_model=GenerationRunOut)
def get_generation_run(run_id: str, db: Session = Depends(get_db)) -> GenerationRunOut:
    run = db.get(TimetableGenerationRun, run_id)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation run not found")
    return GenerationRunOut.model_validate(run)


@router.post("/generation-runs/{run_id}/cancel", response_model=GenerationRunOut)
def cancel_generation_run(run_id: str, db: Session = Depends(get_db)) -> GenerationRunOut:
    run = db.get(TimetableGenerationRun, run_id)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation run not found")
    if run.state in TERMINAL_RUN_STATES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Generation run already {run.state.value}",
        )
    if run.state not in CANCELLABLE_RUN_STATES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Generation run is {run.state.value} and can no longer be cancelled",
        )
    run.cancel_requested = True
    db.commit()
    db.refresh(run)
    logger.info("Cancellation requested for generation run %s", run_id)
    return GenerationRunOut.model_validate(run)
