"""
Pydantic schemas for data validation and serialization.

Schemas:
    task: NormalizedTask (normalizer output) and task CRUD models
    onboarding: Onboarding payload, resolved matrix, results and run status
    api: Health, sync, ingest and error responses

Usage:
    from schemas.task import NormalizedTask, TaskResponse
    from schemas.onboarding import OnboardingPayload, OnboardingResult
    from schemas.api import HealthCheckResponse

Example:
    task = NormalizedTask(
        source=TaskSource.CALENDAR,
        source_id="AAMkAGI2",
        title="  Weekly sync  ",
    )

    assert task.title == "Weekly sync"
    assert task.id == "calendar:AAMkAGI2"
"""

__all__ = [
    "NormalizedTask",
    "TaskCreate",
    "TaskUpdate",
    "TaskResponse",
    "OnboardingPayload",
    "OnboardingResult",
    "HealthCheckResponse",
    "SyncResultResponse",
    "IngestRequest",
]
