from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.class_period import ClassPeriod  # noqa: F401
from app.models.class_section import ClassSection  # noqa: F401
from app.models.notification import Notification, NotificationType  # noqa: F401
from app.models.schedule_entry import ScheduleEntry  # noqa: F401
from app.models.school import School  # noqa: F401
from app.models.subject import Subject  # noqa: F401
from app.models.teaching_assignment import TeachingAssignment  # noqa: F401
from app.models.timetable import Timetable, TimetableSection, TimetableStatus  # noqa: F401
from app.models.timetable_generation import (  # noqa: F401
    GenerationRunState,
    TimetableGenerationLock,
    TimetableGenerationRun,
)
from app.models.user import User, UserRole  # noqa: F401
