"""Vigil persistence layer (SQLAlchemy).

- Database: engine and transactional sessions
- AnalysisCache: content-addressed per-file, per-rule findings cache
- ScanStore: scan lifecycle records and completed reports
"""

from vigil.storage.cache import AnalysisCache, CacheEntry, CacheLookup
from vigil.storage.database import DEFAULT_DATABASE_URL, Database
from vigil.storage.scans import ScanStore

__all__ = [
    "DEFAULT_DATABASE_URL",
    "AnalysisCache",
    "CacheEntry",
    "CacheLookup",
    "Database",
    "ScanStore",
]
