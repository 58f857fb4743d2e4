"""
Background job scheduling.

Single-process retrying queue with exponential backoff and an
exhaustion callback.
"""

from .job_scheduler import Job, JobExhausted, JobHandle, JobKind, JobScheduler, JobStatus

__all__ = [
    "JobScheduler",
    "Job",
    "JobHandle",
    "JobKind",
    "JobStatus",
    "JobExhausted",
]
