"""Commit graph, branches, tags, snapshots and diffs."""

from buildvcs.vcs.branching import BranchManager
from buildvcs.vcs.commits import CommitGraph
from buildvcs.vcs.repo import RepositoryManager
from buildvcs.vcs.tags import TagRegistry

__all__ = ["BranchManager", "CommitGraph", "RepositoryManager", "TagRegistry"]
