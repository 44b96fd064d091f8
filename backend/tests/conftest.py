import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.api.deps import get_db, get_session_factory
from app.core.config import Settings, get_settings
from app.db.base import Base
from app.main import app
from app.models.class_period import ClassPeriod
from app.models.class_section import ClassSection
from app.models.school import School
from app.models.subject import Subject
from app.models.teaching_assignment import TeachingAssignment
from app.models.timetable import Timetable, TimetableSection
from app.models.user import User, UserRole


@pytest.fixture()
def settings():
    return Settings(
        database_url="sqlite+pysqlite://",
        default_max_periods_per_teacher_per_day=3,
        generation_lock_wait_seconds=0,
        generation_lock_poll_seconds=0.01,
        generation_retry_backoff_seconds=0,
        generation_max_attempts=3,
        generation_notify_email=False,
    )


@pytest.fixture()
def session_factory():
    # One shared in-memory database per test.
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory, settings):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: settings

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def build_school(db):
    """Seed a school with a weekly period grid, sections, teachers and eligibility.

    ``eligibility`` maps a section name to the teacher names allowed to teach it.
    """

    def build(
        *,
        days=("Monday",),
        periods_per_day=1,
        breaks=(),
        sections=("A",),
        teachers=("T1",),
        eligibility=None,
        managers=("Admin",),
    ):
        school = School(name="Greenfield High")
        db.add(school)
        db.flush()

        periods = {}
        for day in days:
            for ordinal in range(1, periods_per_day + 1):
                start_hour = 8 + ordinal
                period = ClassPeriod(
                    school_id=school.id,
                    name=f"Period {ordinal}",
                    day=day,
                    ordinal=ordinal,
                    start_time=f"{start_hour:02d}:00",
                    end_time=f"{start_hour:02d}:45",
                    duration_minutes=45,
                    is_break=ordinal in breaks,
                )
                db.add(period)
                periods[(day, ordinal)] = period

        section_rows = {}
        for name in sections:
            section = ClassSection(school_id=school.id, name=name)
            db.add(section)
            section_rows[name] = section

        teacher_rows = {}
        for name in teachers:
            teacher = User(
                school_id=school.id,
                name=name,
                email=f"{name.lower()}@school.test",
                role=UserRole.teacher,
            )
            db.add(teacher)
            teacher_rows[name] = teacher

        for name in managers:
            db.add(
                User(
                    school_id=school.id,
                    name=name,
                    email=f"{name.lower()}@school.test",
                    role=UserRole.admin,
                )
            )

        subject = Subject(school_id=school.id, code="GEN", name="General Studies")
        db.add(subject)
        db.flush()

        if eligibility is None:
            eligibility = {name: list(teachers) for name in sections}
        assignments = {}
        for section_name, teacher_names in eligibility.items():
            for teacher_name in teacher_names:
                assignment = TeachingAssignment(
                    school_id=school.id,
                    teacher_id=teacher_rows[teacher_name].id,
                    class_section_id=section_rows[section_name].id,
                    subject_id=subject.id,
                )
                db.add(assignment)
                assignments[(section_name, teacher_name)] = assignment

        timetable = Timetable(school_id=school.id, title="Term 1 Draft", term_id="term-1")
        db.add(timetable)
        db.flush()
        for section in section_rows.values():
            db.add(TimetableSection(timetable_id=timetable.id, class_section_id=section.id))
        db.commit()

        return {
            "school": school,
            "timetable": timetable,
            "periods": periods,
            "sections": section_rows,
            "teachers": teacher_rows,
            "assignments": assignments,
        }

    return build
