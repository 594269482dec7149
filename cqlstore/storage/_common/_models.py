from enum import Enum

from cqlstore.core import DataModel


class CollectionStatus(str, Enum):
    """Collection (index) status."""

    CREATED = "created"
    EXISTS = "exists"

    DROPPED = "dropped"
    NOT_EXISTS = "not_exists"


class CollectionResult(DataModel):
    """Collection result."""

    status: CollectionStatus
    """Collection status."""

    name: str | None = None
    """Native collection (index) name."""
