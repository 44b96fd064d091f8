"""Timetable generation run coordination.

A run moves through ``pending -> locking -> allocating`` and then either
reports a dry-run preview or persists the proposed entries in one transaction
before notifying the school's timetable managers. The generation lock is held
from ``locking`` until persisting finishes and released on every exit path.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import random

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings, get_settings
from app.core.exceptions import (
    AppError,
    GenerationCancelledError,
    GenerationError,
    PersistenceConflictError,
    ResourceNotFoundError,
    SchedulerError,
    TransientGenerationError,
)
from app.models.schedule_entry import ScheduleEntry
from app.models.timetable import Timetable, TimetableSection
from app.models.timetable_generation import GenerationRunState, TimetableGenerationRun
from app.services.allocator import AllocationResult, Allocator, ExistingEntry
from app.services.audit import log_activity
from app.services.busy_tracker import BusyTracker
from app.services.eligibility import EligibilityCatalog
from app.services.generation_lock import TimetableLockManager
from app.services.notifications import (
    InAppNotificationGateway,
    NotificationGateway,
    TimetableGeneratedEvent,
    resolve_timetable_managers,
)
from app.services.period_calendar import PeriodCalendar

logger = logging.getLogger(__name__)


@dataclass
class GenerationSummary:
    timetable_id: str
    dry_run: bool
    filled_count: int
    gap_count: int
    gaps: list[dict] = field(default_factory=list)
    proposed_entries: list[dict] = field(default_factory=list)
    entry_ids: list[str] = field(default_factory=list)
    skipped_count: int = 0

    def as_dict(self) -> dict:
        payload = {
            "timetable_id": self.timetable_id,
            "dry_run": self.dry_run,
            "filled_count": self.filled_count,
            "gap_count": self.gap_count,
            "skipped_count": self.skipped_count,
            "gaps": list(self.gaps),
        }
        if self.dry_run:
            payload["proposed_entries"] = list(self.proposed_entries)
        else:
            payload["entry_ids"] = list(self.entry_ids)
        return payload


@dataclass(frozen=True)
class _TimetableScope:
    timetable_id: str
    school_id: str
    title: str


def load_existing_entries(db: Session, *, timetable_id: str) -> list[ExistingEntry]:
    rows = db.execute(select(ScheduleEntry).where(ScheduleEntry.timetable_id == timetable_id)).scalars()
    return [
        ExistingEntry(
            class_period_id=row.class_period_id,
            class_section_id=row.class_section_id,
            teacher_id=row.teacher_id,
            day=row.day,
        )
        for row in rows
    ]


def load_timetable_section_ids(db: Session, *, timetable_id: str) -> list[str]:
    return list(
        db.execute(
            select(TimetableSection.class_section_id)
            .where(TimetableSection.timetable_id == timetable_id)
            .order_by(TimetableSection.class_section_id)
        ).scalars()
    )


def _is_transient_db_error(exc: DBAPIError) -> bool:
    return isinstance(exc, OperationalError) or bool(getattr(exc, "connection_invalidated", False))


class GenerationCoordinator:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        settings: Settings | None = None,
        lock_manager: TimetableLockManager | None = None,
        notification_gateway: NotificationGateway | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self.lock_manager = lock_manager or TimetableLockManager(
            session_factory,
            ttl_seconds=self.settings.generation_lock_ttl_seconds,
            wait_seconds=self.settings.generation_lock_wait_seconds,
            poll_seconds=self.settings.generation_lock_poll_seconds,
        )
        self.notification_gateway = notification_gateway or InAppNotificationGateway(
            session_factory,
            deliver_email=self.settings.generation_notify_email,
        )
        self.random = rng if rng is not None else random.Random()
        self.state = GenerationRunState.pending
        self._run_id: str | None = None

    def run(
        self,
        timetable_id: str,
        *,
        dry_run: bool = False,
        max_periods_per_teacher_per_day: int | None = None,
        run_id: str | None = None,
    ) -> GenerationSummary:
        self.state = GenerationRunState.pending
        self._run_id = run_id
        limit = (
            max_periods_per_teacher_per_day
            if max_periods_per_teacher_per_day is not None
            else self.settings.default_max_periods_per_teacher_per_day
        )
        logger.info(
            "Starting timetable generation for timetable %s",
            timetable_id,
            extra={"dry_run": dry_run, "max_periods_per_teacher_per_day": limit, "run_id": run_id},
        )
        try:
            if limit < 1:
                raise SchedulerError(
                    "max_periods_per_teacher_per_day must be at least 1",
                    details={"max_periods_per_teacher_per_day": limit},
                )
            scope = self._load_scope(timetable_id)
            self._transition(GenerationRunState.locking)
            with self.lock_manager.hold(timetable_id, run_id=run_id):
                self._transition(GenerationRunState.allocating)
                result = self._allocate(scope, limit)
                if dry_run:
                    self._transition(GenerationRunState.dry_run_reporting)
                    summary = self._report(scope, result)
                    self._complete(summary)
                    return summary
                self._ensure_not_cancelled()
                self._transition(GenerationRunState.persisting)
                entry_ids = self._persist(scope, result, limit)
        except GenerationCancelledError as exc:
            self._finish(GenerationRunState.cancelled, failure_reason=exc.message, retryable=False)
            logger.info("Timetable generation for timetable %s was cancelled", timetable_id)
            raise
        except AppError as exc:
            retryable = isinstance(exc, GenerationError) and exc.retryable
            self._finish(GenerationRunState.failed, failure_reason=exc.message, retryable=retryable)
            logger.error(
                "Failed to generate timetable entries for timetable %s: %s",
                timetable_id,
                exc.message,
                extra={"retryable": retryable},
            )
            raise
        except DBAPIError as exc:
            if not _is_transient_db_error(exc):
                self._finish(GenerationRunState.failed, failure_reason=str(exc.orig), retryable=False)
                logger.exception("Failed to generate timetable entries for timetable %s", timetable_id)
                raise
            error = TransientGenerationError(
                "Database unavailable during timetable generation",
                details={"timetable_id": timetable_id},
            )
            self._finish(GenerationRunState.failed, failure_reason=error.message, retryable=True)
            logger.warning("Transient database error while generating timetable %s", timetable_id, exc_info=True)
            raise error from exc
        except Exception as exc:
            self._finish(GenerationRunState.failed, failure_reason=str(exc) or type(exc).__name__, retryable=False)
            logger.exception("Unexpected error while generating timetable %s", timetable_id)
            raise

        summary = GenerationSummary(
            timetable_id=scope.timetable_id,
            dry_run=False,
            filled_count=result.filled_count,
            gap_count=result.gap_count,
            gaps=[gap.as_dict() for gap in result.gaps],
            entry_ids=entry_ids,
            skipped_count=result.skipped_count,
        )
        self._transition(GenerationRunState.notifying)
        self._notify(scope, summary)
        self._complete(summary)
        logger.info(
            "Timetable generation completed successfully for timetable %s",
            timetable_id,
            extra={"filled_count": summary.filled_count, "gap_count": summary.gap_count},
        )
        return summary

    def _load_scope(self, timetable_id: str) -> _TimetableScope:
        with self._session_factory() as db:
            timetable = db.get(Timetable, timetable_id)
            if timetable is None:
                raise ResourceNotFoundError("Timetable", timetable_id)
            return _TimetableScope(timetable_id=timetable.id, school_id=timetable.school_id, title=timetable.title)

    def _allocate(self, scope: _TimetableScope, limit: int) -> AllocationResult:
        with self._session_factory() as db:
            calendar = PeriodCalendar.load(db, school_id=scope.school_id)
            section_ids = load_timetable_section_ids(db, timetable_id=scope.timetable_id)
            catalog = EligibilityCatalog.load(db, school_id=scope.school_id, class_section_ids=section_ids)
            existing = load_existing_entries(db, timetable_id=scope.timetable_id)

        allocator = Allocator(
            timetable_id=scope.timetable_id,
            school_id=scope.school_id,
            catalog=catalog,
            max_periods_per_teacher_per_day=limit,
            rng=self.random,
            busy_tracker=BusyTracker(),
        )
        result = allocator.allocate(calendar.teaching_periods_by_day(), section_ids, existing)

        for note in result.notes:
            logger.debug(
                "Class section %s already assigned for period %s on %s",
                note.class_section_id,
                note.period_id,
                note.day,
            )
        for gap in result.gaps:
            logger.warning(
                "No available teacher for class section %s in period %s on %s (%s)",
                gap.class_section_id,
                gap.period_id,
                gap.day,
                gap.reason.value,
            )
        return result

    def _report(self, scope: _TimetableScope, result: AllocationResult) -> GenerationSummary:
        summary = GenerationSummary(
            timetable_id=scope.timetable_id,
            dry_run=True,
            filled_count=result.filled_count,
            gap_count=result.gap_count,
            gaps=[gap.as_dict() for gap in result.gaps],
            proposed_entries=[entry.as_dict() for entry in result.entries],
            skipped_count=result.skipped_count,
        )
        logger.info(
            "Dry run completed for timetable %s",
            scope.timetable_id,
            extra={"entries": summary.proposed_entries, "gap_count": summary.gap_count},
        )
        return summary

    def _persist(self, scope: _TimetableScope, result: AllocationResult, limit: int) -> list[str]:
        with self._session_factory() as db:
            records = [
                ScheduleEntry(
                    school_id=entry.school_id,
                    timetable_id=entry.timetable_id,
                    class_period_id=entry.class_period_id,
                    teaching_assignment_id=entry.teaching_assignment_id,
                    class_section_id=entry.class_section_id,
                    teacher_id=entry.teacher_id,
                    day=entry.day,
                    start_time=entry.start_time,
                    end_time=entry.end_time,
                )
                for entry in result.entries
            ]
            try:
                db.add_all(records)
                db.flush()
                entry_ids = [record.id for record in records]
                log_activity(
                    db,
                    action="timetable.generate",
                    school_id=scope.school_id,
                    entity_type="timetable",
                    entity_id=scope.timetable_id,
                    details={
                        "run_id": self._run_id,
                        "filled_count": result.filled_count,
                        "gap_count": result.gap_count,
                        "max_periods_per_teacher_per_day": limit,
                    },
                )
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise PersistenceConflictError(
                    "Schedule entry already exists for a generated slot",
                    details={"timetable_id": scope.timetable_id},
                ) from exc
        return entry_ids

    def _notify(self, scope: _TimetableScope, summary: GenerationSummary) -> None:
        event = TimetableGeneratedEvent(
            timetable_id=scope.timetable_id,
            timetable_title=scope.title,
            filled_count=summary.filled_count,
            gap_count=summary.gap_count,
        )
        try:
            with self._session_factory() as db:
                recipients = resolve_timetable_managers(db, school_id=scope.school_id)
            if not recipients:
                logger.warning("No users found to notify for timetable %s", scope.timetable_id)
                return
            self.notification_gateway.send(recipients, event)
        except Exception:
            logger.warning("Failed to send notifications for timetable %s", scope.timetable_id, exc_info=True)

    def _ensure_not_cancelled(self) -> None:
        if self._run_id is None:
            return
        with self._session_factory() as db:
            requested = db.execute(
                select(TimetableGenerationRun.cancel_requested).where(TimetableGenerationRun.id == self._run_id)
            ).scalar_one_or_none()
        if requested:
            raise GenerationCancelledError(self._run_id)

    def _transition(self, state: GenerationRunState) -> None:
        logger.debug("Generation run %s: %s -> %s", self._run_id, self.state.value, state.value)
        self.state = state
        self._update_run(state=state)

    def _complete(self, summary: GenerationSummary) -> None:
        self._finish(GenerationRunState.completed, summary=summary.as_dict())

    def _finish(
        self,
        state: GenerationRunState,
        *,
        summary: dict | None = None,
        failure_reason: str | None = None,
        retryable: bool = False,
    ) -> None:
        self.state = state
        values: dict = {
            "state": state,
            "retryable": retryable,
            "failure_reason": failure_reason[:500] if failure_reason else None,
            "finished_at": datetime.now(timezone.utc),
        }
        if summary is not None:
            values["summary"] = summary
        self._update_run(**values)

    def _update_run(self, **values) -> None:
        if self._run_id is None:
            return
        try:
            with self._session_factory() as db:
                db.execute(
                    update(TimetableGenerationRun).where(TimetableGenerationRun.id == self._run_id).values(**values)
                )
                db.commit()
        except OperationalError:
            logger.warning("Unable to record state of generation run %s", self._run_id, exc_info=True)


def make_coordinator_factory(
    session_factory: sessionmaker[Session],
    *,
    settings: Settings | None = None,
) -> Callable[[], GenerationCoordinator]:
    def factory() -> GenerationCoordinator:
        return GenerationCoordinator(session_factory, settings=settings)

    return factory
