from enum import StrEnum, auto

class JobStatus(StrEnum):
    PENDING = auto()     # Waiting for run_at, or rewound for retry/recurrence
    RUNNING = auto()     # Leased by a dispatcher invocation
    SUCCEEDED = auto()   # Handler returned (terminal for one-off jobs)
    FAILED = auto()      # Attempts exhausted or unretryable error
    CANCELLED = auto()   # Operator cancelled

TERMINAL_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED})

class WorkerRunStatus(StrEnum):
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()

class TriggerSource(StrEnum):
    CRON = auto()       # External timer (the expected cadence)
    MANUAL = auto()     # Operator kick from the admin surface
    EMBEDDED = auto()   # In-process ticker (development)

class AdminAction(StrEnum):
    RETRY = auto()
    CANCEL = auto()
    DELETE = auto()
    ENABLE = auto()    # Recurring jobs only
    DISABLE = auto()   # Recurring jobs only

class JobOutcome(StrEnum):
    SUCCEEDED = auto()    # One-off job finished
    RESCHEDULED = auto()  # Recurring job rewound to pending for its next run
    RETRIED = auto()      # Failed attempt, back to pending with backoff
    FAILED = auto()       # Terminal failure
    DISCARDED = auto()    # Job left running state mid-flight (cancelled); result dropped
