from typing import Optional


class JobError(Exception):
    """Base exception for job queue errors."""
    pass

class JobValidationError(JobError):
    pass

class JobNotFoundError(JobError):
    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")

class InvalidJobStateError(JobError):
    def __init__(self, current_status, target_status):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(f"Cannot transition from {current_status} to {target_status}")

class UnknownTaskTypeError(JobError):
    def __init__(self, task_type: str):
        self.task_type = task_type
        super().__init__(f"No job handler registered for task type: {task_type}")


class TaskError(Exception):
    """
    Raised by task handlers to report a failure with an explicit retry hint.

    retry_in_seconds overrides the backoff policy for the next attempt
    (still bounded by RETRY_MAX_DELAY_SECONDS).
    """

    def __init__(self, message: str, retry_in_seconds: Optional[float] = None):
        super().__init__(message)
        self.retry_in_seconds = retry_in_seconds

class PermanentTaskError(TaskError):
    """Fails the job immediately, regardless of remaining attempts."""

    def __init__(self, message: str):
        super().__init__(message, retry_in_seconds=None)
