"""
Graph state for the account provisioner.

The account key is NOT part of this state: graph state can be checkpointed
or traced, so the key stays on the AccountProvisioner instance and only the
public facts of the account flow through here.
"""
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from typing_extensions import TypedDict


class ProvisioningPhase(str, Enum):
    UNPROVISIONED = "unprovisioned"
    REGISTERING = "registering"
    LOADING = "loading"
    VALIDATING = "validating"
    PROVISIONED = "provisioned"
    FAILED = "failed"


class AccountState(TypedDict):
    phase: ProvisioningPhase
    registration_uri: Optional[str]
    contact: List[str]
    status: Optional[str]
    created: bool                # True when this run registered the account
    contact_updated: bool        # True when this run pushed a new contact list
    legacy_registration: bool    # URI came from the v1 JSON registration blob


def initial_state() -> AccountState:
    return AccountState(
        phase=ProvisioningPhase.LOADING,
        registration_uri=None,
        contact=[],
        status=None,
        created=False,
        contact_updated=False,
        legacy_registration=False,
    )
