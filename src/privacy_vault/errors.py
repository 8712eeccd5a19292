"""Exceptions raised by the vault.

Callers see one of these per failing stage; the underlying driver or
transport error is chained as ``__cause__`` and logged, never echoed.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base class for all vault failures."""


class InvalidInputError(VaultError):
    """Input was empty or not a string.  Raised before any side effect."""


class StoreUnavailableError(VaultError):
    """The token store could not be read or written."""


class CompletionFailedError(VaultError):
    """The external text-completion call failed (timeout, quota, auth...)."""


class ConfigurationError(VaultError):
    """Required configuration (e.g. an API key) is missing or invalid."""
