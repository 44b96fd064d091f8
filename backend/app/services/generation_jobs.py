from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
import logging
import time

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings, get_settings
from app.core.exceptions import AppError, GenerationError
from app.models.timetable_generation import (
    TERMINAL_RUN_STATES,
    GenerationRunState,
    TimetableGenerationRun,
)
from app.services.generation import GenerationCoordinator, GenerationSummary, make_coordinator_factory

logger = logging.getLogger(__name__)


class GenerationJobRunner:
    """Runs queued generation jobs, retrying only failures marked retryable.

    Attempt ``n`` that fails retryably waits
    ``generation_retry_backoff_seconds * 2 ** (n - 1)`` before the next one.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        settings: Settings | None = None,
        coordinator_factory: Callable[[], GenerationCoordinator] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self._coordinator_factory = coordinator_factory or make_coordinator_factory(
            session_factory, settings=self.settings
        )
        self._sleep = sleep

    def enqueue(
        self,
        db: Session,
        *,
        timetable_id: str,
        dry_run: bool = False,
        max_periods_per_teacher_per_day: int | None = None,
    ) -> TimetableGenerationRun:
        run = TimetableGenerationRun(
            timetable_id=timetable_id,
            dry_run=dry_run,
            max_periods_per_teacher_per_day=(
                max_periods_per_teacher_per_day
                if max_periods_per_teacher_per_day is not None
                else self.settings.default_max_periods_per_teacher_per_day
            ),
            state=GenerationRunState.pending,
            attempts=0,
            summary={},
        )
        db.add(run)
        db.commit()
        db.refresh(run)
        logger.info("Queued timetable generation run %s for timetable %s", run.id, timetable_id)
        return run

    def execute(self, run_id: str) -> GenerationSummary | None:
        with self._session_factory() as db:
            run = db.get(TimetableGenerationRun, run_id)
            if run is None:
                logger.error("Generation run %s not found", run_id)
                return None
            if run.state in TERMINAL_RUN_STATES:
                logger.info("Generation run %s already finished as %s", run_id, run.state.value)
                return None
            timetable_id = run.timetable_id
            dry_run = run.dry_run
            limit = run.max_periods_per_teacher_per_day
            cancel_requested = run.cancel_requested

        if cancel_requested:
            self._update_run(
                run_id,
                state=GenerationRunState.cancelled,
                failure_reason="Generation run was cancelled",
                finished_at=datetime.now(timezone.utc),
            )
            return None

        max_attempts = max(1, self.settings.generation_max_attempts)
        for attempt in range(1, max_attempts + 1):
            self._update_run(
                run_id,
                attempts=attempt,
                state=GenerationRunState.pending,
                started_at=datetime.now(timezone.utc),
            )
            try:
                coordinator = self._coordinator_factory()
                return coordinator.run(
                    timetable_id,
                    dry_run=dry_run,
                    max_periods_per_teacher_per_day=limit,
                    run_id=run_id,
                )
            except GenerationError as exc:
                if not exc.retryable:
                    return None
                if attempt >= max_attempts:
                    logger.error(
                        "Generation run %s gave up after %d attempt(s): %s",
                        run_id,
                        attempt,
                        exc.message,
                    )
                    return None
                delay = max(0.0, self.settings.generation_retry_backoff_seconds) * (2 ** (attempt - 1))
                logger.warning(
                    "Generation run %s attempt %d failed (%s); retrying in %.1fs",
                    run_id,
                    attempt,
                    exc.message,
                    delay,
                )
                if delay > 0:
                    self._sleep(delay)
            except AppError:
                # Structural failure; the coordinator already recorded it on the run.
                return None
            except Exception as exc:
                logger.exception("Generation run %s crashed on attempt %d", run_id, attempt)
                self._fail_unfinished(run_id, str(exc) or type(exc).__name__)
                return None
        return None

    def _fail_unfinished(self, run_id: str, reason: str) -> None:
        with self._session_factory() as db:
            db.execute(
                update(TimetableGenerationRun)
                .where(
                    TimetableGenerationRun.id == run_id,
                    TimetableGenerationRun.state.not_in(list(TERMINAL_RUN_STATES)),
                )
                .values(
                    state=GenerationRunState.failed,
                    retryable=False,
                    failure_reason=reason[:500],
                    finished_at=datetime.now(timezone.utc),
                )
            )
            db.commit()

    def _update_run(self, run_id: str, **values) -> None:
        with self._session_factory() as db:
            db.execute(update(TimetableGenerationRun).where(TimetableGenerationRun.id == run_id).values(**values))
            db.commit()
