"""SQLite persistence for the version graph."""

from buildvcs.storage.database import VersionDatabase

__all__ = ["VersionDatabase"]
