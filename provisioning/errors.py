"""
Error kinds raised while provisioning an ACME account.

None of these are retried here: they propagate to whatever loop decided to
run the provisioner, which owns retry/backoff policy.
"""
from __future__ import annotations


class AccountError(Exception):
    """Base class for account provisioning failures."""


class CryptoGenerationError(AccountError):
    """The account key could not be generated."""


class EncodingError(AccountError):
    """Stored account data (PEM key, legacy registration blob) could not be decoded."""


class StoreLookupError(AccountError):
    """The account store could not be read, or a required field is missing."""


class ProtocolError(AccountError):
    """The ACME server rejected (or never answered) a register/fetch/update call."""

    def __init__(self, uri: str, cause: BaseException | str) -> None:
        self.uri = uri
        self.cause = cause
        super().__init__(f"ACME request to '{uri}' failed: {cause}")
