from .scheduler import (
    QUESTION_EXTRACTION,
    REQUIREMENT_EXTRACTION,
    BackgroundJob,
    JobScheduler,
    StartResult,
)

__all__ = [
    "QUESTION_EXTRACTION",
    "REQUIREMENT_EXTRACTION",
    "BackgroundJob",
    "JobScheduler",
    "StartResult",
]
