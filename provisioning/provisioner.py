"""
AccountProvisioner: make sure exactly one ACME account exists for this
installation and that its contact matches the configured email.

First run (no key in the store):
  generate key → register (agreeing to the ToS) → persist key + URI together
Later runs:
  decode stored key → resolve URI (v2 field, else v1 JSON blob) →
  fetch account → update contact only if it differs

The stored key is never regenerated or rewritten once an account exists: it is
the only proof of ownership the CA accepts for that account URI.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

from acme_client import crypto
from acme_client.client import AccountRecord, AcmeDirectoryClient
from acme_client.crypto import AccountKey, KeyTypeConfig
from provisioning.errors import AccountError, EncodingError, StoreLookupError
from provisioning.graph import build_graph
from provisioning.state import AccountState, ProvisioningPhase, initial_state
from storage.account_store import AccountStore, StoreField

logger = logging.getLogger(__name__)


class AccountConfig(Protocol):
    def directory_url(self) -> str:
        ...

    def contact_email(self) -> str:
        ...

    def key_type_config(self) -> KeyTypeConfig:
        ...


@dataclass
class ProvisionedAccount:
    record: AccountRecord
    account_key: AccountKey
    created: bool
    contact_updated: bool = False


def expected_contact(email: str) -> list[str]:
    """The contact list the account should carry: one lower-cased mailto URI."""
    return [f"mailto:{email.lower()}"]


def accept_tos(tos_url: str) -> bool:
    """Agree to the CA's terms of service; the operator consented before running us."""
    logger.info("if you don't accept the TOS (%s) please exit the program now", tos_url)
    return True


def resolve_registration_uri(data: Mapping[str, bytes]) -> tuple[str, bool]:
    """
    Return (account_uri, from_legacy_blob) from stored account data.

    Raises StoreLookupError if neither the URI field nor the legacy
    registration blob is present, EncodingError if the blob cannot be decoded.
    """
    uri = data.get(StoreField.REGISTRATION_URL.value)
    if uri is not None:
        try:
            return uri.decode("utf-8"), False
        except UnicodeDecodeError as exc:
            raise EncodingError(f"stored registration URL is not UTF-8: {exc}") from exc

    blob = data.get(StoreField.LEGACY_REGISTRATION.value)
    if blob is None:
        raise StoreLookupError("could not find an ACME account URI in the account store")

    try:
        registration = json.loads(blob)
    except ValueError as exc:
        raise EncodingError(f"could not decode legacy ACME registration: {exc}") from exc
    if not isinstance(registration, dict) or not isinstance(registration.get("URI"), str):
        raise EncodingError("legacy ACME registration has no 'URI' string")
    return registration["URI"], True


class AccountProvisioner:
    """
    Run the provisioning state machine against one store and one directory.

    Not safe for concurrent use on the same account: callers serialize runs.
    """

    def __init__(
        self,
        store: AccountStore,
        client: AcmeDirectoryClient,
        config: AccountConfig,
    ) -> None:
        self.store = store
        self.client = client
        self.config = config
        self.phase = ProvisioningPhase.UNPROVISIONED
        self._account_key: Optional[AccountKey] = None
        self._record: Optional[AccountRecord] = None
        self._graph = build_graph(self)

    def provision(self) -> ProvisionedAccount:
        """
        Register a new account or validate the stored one.

        Any error leaves the provisioner in the FAILED phase and is re-raised
        unchanged; nothing is retried here.
        """
        self._account_key = None
        self._record = None
        try:
            final = self._graph.invoke(initial_state())
        except Exception as exc:
            self.phase = ProvisioningPhase.FAILED
            logger.error("ACME account provisioning failed: %s", exc)
            raise

        if self._record is None or self._account_key is None:
            self.phase = ProvisioningPhase.FAILED
            raise AccountError("provisioning finished without an account record")

        self.phase = ProvisioningPhase.PROVISIONED
        return ProvisionedAccount(
            record=self._record,
            account_key=self._account_key,
            created=final["created"],
            contact_updated=final["contact_updated"],
        )

    # ── Graph nodes ───────────────────────────────────────────────────────

    def load_account(self, state: AccountState) -> dict:
        """Read the store; decode the key and URI if an account already exists."""
        self.phase = ProvisioningPhase.LOADING
        data = self.store.get()

        key_pem = data.get(StoreField.PRIVATE_KEY.value)
        if key_pem is None:
            logger.info("No ACME account key stored, registering a new account")
            self.phase = ProvisioningPhase.UNPROVISIONED
            return {"phase": ProvisioningPhase.UNPROVISIONED}

        self._account_key = crypto.load_signer(key_pem)
        uri, legacy = resolve_registration_uri(data)
        if legacy:
            logger.info("Read ACME account URI from legacy registration data: %s", uri)

        self.phase = ProvisioningPhase.VALIDATING
        return {
            "phase": ProvisioningPhase.VALIDATING,
            "registration_uri": uri,
            "legacy_registration": legacy,
        }

    def register_account(self, state: AccountState) -> dict:
        """Generate a key, register it, and persist key + URI in one write."""
        self.phase = ProvisioningPhase.REGISTERING
        key_pem, account_key = crypto.generate(self.config.key_type_config())
        contact = expected_contact(self.config.contact_email())

        record = self.client.register(account_key, contact, accept_tos)
        logger.info("created an ACME account (registration url: %s)", record.uri)

        self.store.put({
            StoreField.PRIVATE_KEY.value: key_pem,
            StoreField.REGISTRATION_URL.value: record.uri.encode("utf-8"),
        })

        self._account_key = account_key
        self._record = record
        return {
            "phase": ProvisioningPhase.PROVISIONED,
            "registration_uri": record.uri,
            "contact": list(record.contact),
            "status": record.status,
            "created": True,
        }

    def validate_account(self, state: AccountState) -> dict:
        """Fetch the stored account and bring its contact in line with config."""
        uri = state["registration_uri"]
        account_key = self._account_key
        if uri is None or account_key is None:
            raise StoreLookupError("no stored account key and URI to validate")

        record = self.client.get_account(account_key, uri)

        contact = expected_contact(self.config.contact_email())
        updated = False
        if list(record.contact) != contact:
            record.contact = contact
            record = self.client.update_account(account_key, record)
            updated = True
            logger.info("updated ACME account's contact to '%s'", contact)

        self._record = record
        return {
            "phase": ProvisioningPhase.PROVISIONED,
            "contact": list(record.contact),
            "status": record.status,
            "contact_updated": updated,
        }
