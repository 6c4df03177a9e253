"""
Timeout, retry and requeue constants for the platform operator.

Centralizes timing values so reconcilers, clients and the publisher
agree on them.
"""

from __future__ import annotations

# =============================================================================
# Status Writes
# =============================================================================

# Attempts for an optimistic status/metadata update before giving up
STATUS_UPDATE_MAX_ATTEMPTS = 5

# =============================================================================
# Requeue Delays
# =============================================================================

# Delay before retrying after a Git publish failure
PUBLISH_REQUEUE_DELAY_S = 10.0

# Delay before retrying after one or more children failed to project
PARTIAL_INSTALL_REQUEUE_DELAY_S = 30.0

# Immediate requeue after status initialization
IMMEDIATE_REQUEUE_DELAY_S = 1.0

# Backoff used by the dispatch layer when a pass raises ReconcileError
RECONCILE_ERROR_BACKOFF_S = 15.0

# Interval of the steady-state drift pass for every claim
RESYNC_INTERVAL_S = 300.0

# =============================================================================
# Deletion Cleanup
# =============================================================================

# Cleanup attempts before the finalizer is removed anyway
CLEANUP_MAX_ATTEMPTS = 3

# Initial delay between cleanup attempts
CLEANUP_RETRY_DELAY_S = 1.0

# =============================================================================
# HTTP Client Timeouts
# =============================================================================

# Default timeout for Git hosting API requests
HTTP_CLIENT_TIMEOUT_S = 30.0

# =============================================================================
# Subprocess Timeouts
# =============================================================================

# Timeout for git clone/push
GIT_COMMAND_TIMEOUT_S = 120

# Timeout for helm pull/uninstall
HELM_COMMAND_TIMEOUT_S = 120

# =============================================================================
# Retry Configuration
# =============================================================================

# Default number of retries for transient HTTP failures
DEFAULT_MAX_RETRIES = 3

# Initial delay between retries
DEFAULT_RETRY_DELAY_S = 1.0

# Exponential backoff multiplier
DEFAULT_RETRY_BACKOFF = 2.0

# HTTP status codes that should trigger a retry
RETRYABLE_HTTP_STATUS_CODES = frozenset({500, 502, 503, 504, 429})
