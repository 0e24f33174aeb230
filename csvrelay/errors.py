"""
Error taxonomy.

- InputError: file pick cancelled or unreadable; shown as a status message.
- ComputeError: the compute endpoint failed; surfaced verbatim, never retried.
- EncodeEmptyError: nothing to export; terminal for an export run.
- CapabilityError / CapabilityUnavailable: device capability failures; the
  export orchestrator absorbs these and moves to the next fallback.
"""

from __future__ import annotations

from typing import Optional


class InputError(Exception):
    """Raised when the input file cannot be picked or read."""


class ComputeError(Exception):
    """Raised when the compute endpoint call fails."""

    def __init__(self, reason: str, status: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status = status


class EncodeEmptyError(Exception):
    """Raised when an empty result set is handed to the encoder."""


class CapabilityError(Exception):
    """A device capability call failed or was denied."""


class CapabilityUnavailable(CapabilityError):
    """The capability does not exist on this platform."""
