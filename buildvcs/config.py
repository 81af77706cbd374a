"""Global configuration: names, limits, constants."""

# Name of the branch created with every repository
DEFAULT_BRANCH_NAME = "main"

INITIAL_COMMIT_MESSAGE = "Initial commit"
REVERT_COMMIT_MESSAGE = "Revert to previous commit"
FALLBACK_COMMIT_MESSAGE = "Updated build configuration"

# Optimization-map key maintained by the build editor, never diffed
OPTIMIZATION_BOOKKEEPING_KEY = "lastUpdated"

# History walks
DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 1000
DEFAULT_RECENT_COMMITS = 20

# Comment threads are walked breadth-first up to this depth
MAX_THREAD_DEPTH = 100

SHORT_HASH_LENGTH = 8

# Seconds sqlite waits on a locked database before giving up
DEFAULT_BUSY_TIMEOUT = 5.0
