"""Event type constants.

Learn: Centralizing event types as constants prevents typos and
makes it easy to discover all event types in the system.
"""

# ─── Identity ────────────────────────────────────────────

CHALLENGE_STARTED = "challenge.started"
CHALLENGE_VERIFIED = "challenge.verified"
CHALLENGE_EXPIRED = "challenge.expired"

# ─── Entries ─────────────────────────────────────────────

ENTRY_CREATED = "entry.created"
ENTRY_UPDATED = "entry.updated"

# ─── Votes ───────────────────────────────────────────────

VOTE_CAST = "vote.cast"
VOTE_RETRACTED = "vote.retracted"
