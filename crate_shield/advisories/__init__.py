"""Advisory records and the local advisory database mirror."""

from .database import AdvisoryDatabase, DatabaseMetadata
from .git import GitTransport, MirrorLock
from .models import AdvisoryRecord, Category, Severity

__all__ = [
    "AdvisoryDatabase",
    "AdvisoryRecord",
    "Category",
    "DatabaseMetadata",
    "GitTransport",
    "MirrorLock",
    "Severity",
]
