class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulerError(AppError):
    """Raised when the scheduler is given invalid input."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)
        self.details = {"resource_type": resource_type, "resource_id": resource_id}


class GenerationError(AppError):
    """A generation run could not finish.

    ``retryable`` tells the job runner whether another attempt may succeed
    without operator intervention.
    """
    retryable = False

    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        super().__init__(message, status_code=status_code, details=details)

class LockContentionError(GenerationError):
    """Another run holds the timetable's generation lock."""
    retryable = True

    def __init__(self, timetable_id: str):
        super().__init__(
            "Timetable generation already in progress",
            status_code=409,
            details={"timetable_id": timetable_id},
        )

class TransientGenerationError(GenerationError):
    """Connection-level database failure; safe to retry."""
    retryable = True

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=503, details=details)

class PersistenceConflictError(GenerationError):
    """Inserting the proposed entries violated a uniqueness constraint."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class GenerationCancelledError(GenerationError):
    def __init__(self, run_id: str):
        super().__init__("Generation run was cancelled", status_code=409, details={"run_id": run_id})
