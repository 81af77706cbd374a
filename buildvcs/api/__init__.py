"""Public facade."""

from buildvcs.api.facade import BuildVCS

__all__ = ["BuildVCS"]
