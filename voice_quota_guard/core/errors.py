"""
Exception types for voice quota enforcement.

Policy violations are never raised: they come back as a denied Decision.
Everything here is either an infrastructure failure or a caller mistake.
"""


class VoiceQuotaError(Exception):
    """Base class for all voice quota errors."""


class InvalidUsageError(VoiceQuotaError, ValueError):
    """Raised for malformed input such as negative seconds or an unknown kind."""


class UnknownPlanError(VoiceQuotaError, ValueError):
    """Raised by strict plan lookups for a tier that is not in the plan table."""


class LedgerNotFoundError(VoiceQuotaError, KeyError):
    """Raised when a user has no ledger row (never provisioned for voice)."""

    def __init__(self, user_id: str):
        super().__init__(f"No voice usage ledger for user: {user_id}")
        self.user_id = user_id

    def __str__(self) -> str:
        # KeyError wraps its message in quotes otherwise
        return self.args[0]


class LedgerUnavailableError(VoiceQuotaError):
    """Raised when the ledger store cannot be reached or written."""


class LedgerCorruptedError(VoiceQuotaError):
    """Raised when a stored ledger row cannot be decoded."""
