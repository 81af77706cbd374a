"""BuildVCS — version control for configurable builds.

Repositories, branches, commits, tags, merge requests and threaded
comments over immutable build snapshots.
"""

__version__ = "1.0.0"

from buildvcs.api.facade import BuildVCS
from buildvcs.collaboration.comments import CommentThreadManager
from buildvcs.collaboration.merge_requests import MergeRequestTracker
from buildvcs.errors import (
    ConflictError,
    ForbiddenError,
    IntegrityError,
    NotFoundError,
    RetryableError,
    ValidationError,
    VersionControlError,
)
from buildvcs.models import (
    Branch,
    ChangeSet,
    Comment,
    Commit,
    MergeRequest,
    Repository,
    Snapshot,
    SnapshotPayload,
    Tag,
)
from buildvcs.settings import ConfigManager, configure_logging
from buildvcs.storage.database import VersionDatabase
from buildvcs.vcs.branching import BranchManager
from buildvcs.vcs.commits import CommitGraph
from buildvcs.vcs.diff import DiffEngine, calculate_changes, generate_commit_message
from buildvcs.vcs.repo import RepositoryManager
from buildvcs.vcs.snapshots import SnapshotStore
from buildvcs.vcs.tags import TagRegistry

__all__ = [
    "__version__",
    # Facade
    "BuildVCS",
    # Engine components
    "BranchManager",
    "CommentThreadManager",
    "CommitGraph",
    "DiffEngine",
    "MergeRequestTracker",
    "RepositoryManager",
    "SnapshotStore",
    "TagRegistry",
    "VersionDatabase",
    # Models
    "Branch",
    "ChangeSet",
    "Comment",
    "Commit",
    "MergeRequest",
    "Repository",
    "Snapshot",
    "SnapshotPayload",
    "Tag",
    # Errors
    "ConflictError",
    "ForbiddenError",
    "IntegrityError",
    "NotFoundError",
    "RetryableError",
    "ValidationError",
    "VersionControlError",
    # Configuration
    "ConfigManager",
    "configure_logging",
    "calculate_changes",
    "generate_commit_message",
]
