"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Defines the constants shared by the lifecycle services.

- Single source of truth for magic values
- Each constant is documented
- No business logic here

============================================================
"""

from datetime import datetime, timedelta


# ============================================================
# ROLES
# ============================================================

ADMIN_ROLE = "Admin"
"""Role an account must hold to issue bans or evaluate proposals."""


# ============================================================
# BAN LIFECYCLE
# ============================================================

PERMANENT_BAN_UNTIL = datetime(9999, 12, 31, 23, 59, 59)
"""Sentinel banned-until value for permanent bans (naive UTC)."""

BAN_SWEEP_INTERVAL = timedelta(minutes=30)
"""Default interval between ban expiration sweeps."""


# ============================================================
# PROPOSAL LIFECYCLE
# ============================================================

PROPOSAL_MAX_PENDING_AGE = timedelta(hours=24)
"""Pending proposals at least this old are rejected by the sweep."""

PROPOSAL_SWEEP_INTERVAL = timedelta(hours=1)
"""Default interval between proposal expiration sweeps."""

ALLOWED_PHOTO_TYPES = {
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}
"""Allowed photo extensions and the content type each one maps to."""

MAX_PHOTO_BYTES = 5 * 1024 * 1024
"""Maximum accepted photo size (5 MB)."""

PROPOSAL_TOKEN_BYTES = 32
"""Random bytes behind each opaque proposal token."""


# ============================================================
# STATISTICS
# ============================================================

TOP_USERS_LIMIT = 10
"""Size of the top-contributors view."""
