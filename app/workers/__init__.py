# Workers package - outfit job actors, record store and run dispatch
# Import actor/router/queue from their modules; only the shared base types
# are re-exported here so app.schemas can depend on them.

from app.workers.base import (
    JobStatus,
    OutfitJobError,
    InvalidSpec,
    JobNotFound,
    UpstreamFailure,
    StorageFailure,
    ValidationFailure,
)

__all__ = [
    "JobStatus",
    "OutfitJobError",
    "InvalidSpec",
    "JobNotFound",
    "UpstreamFailure",
    "StorageFailure",
    "ValidationFailure",
]
