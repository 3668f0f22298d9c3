from originwatch.db.repositories.origin_repo import (
    OriginFailureStatus,
    OriginRepository,
    OriginStatus,
)

__all__ = ["OriginFailureStatus", "OriginRepository", "OriginStatus"]
