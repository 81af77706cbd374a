"""Collaboration layer — merge requests and threaded comments."""

from buildvcs.collaboration.comments import CommentThreadManager
from buildvcs.collaboration.merge_requests import MergeRequestTracker

__all__ = ["CommentThreadManager", "MergeRequestTracker"]
