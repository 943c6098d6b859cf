"""
Shared pytest fixtures.

Pebble fixture
--------------
The `pebble_settings` fixture patches the module-level `config.settings`
singleton so the provisioner talks to a local Pebble instance and writes its
account file under tmp_path.
"""
from __future__ import annotations

import socket
from pathlib import Path

import pytest

from acme_client.crypto import KeyFamily, KeyTypeConfig


# ─── Pebble availability check ────────────────────────────────────────────────

def _pebble_running(host: str = "localhost", port: int = 14000) -> bool:
    """Return True if Pebble's ACME port is open."""
    try:
        with socket.create_connection((host, port), timeout=1):
            return True
    except OSError:
        return False


requires_pebble = pytest.mark.skipif(
    not _pebble_running(),
    reason="Pebble not running — start with: docker compose -f docker-compose.pebble.yml up -d",
)


# ─── Settings patch ───────────────────────────────────────────────────────────

@pytest.fixture()
def pebble_settings(tmp_path: Path):
    """
    Mutate the live settings singleton to point at local Pebble,
    restore original values after the test.
    """
    from config import settings

    originals = {
        "CA_PROVIDER":        settings.CA_PROVIDER,
        "ACME_DIRECTORY_URL": settings.ACME_DIRECTORY_URL,
        "ACME_EAB_KEY_ID":    settings.ACME_EAB_KEY_ID,
        "ACME_EAB_HMAC_KEY":  settings.ACME_EAB_HMAC_KEY,
        "ACME_EMAIL":         settings.ACME_EMAIL,
        "ACME_KEY_TYPE":      settings.ACME_KEY_TYPE,
        "ACME_KEY_SIZE":      settings.ACME_KEY_SIZE,
        "ACCOUNT_STORE_PATH": settings.ACCOUNT_STORE_PATH,
        "ACME_INSECURE":      settings.ACME_INSECURE,
        "ACME_CA_BUNDLE":     settings.ACME_CA_BUNDLE,
    }

    settings.CA_PROVIDER        = "custom"
    settings.ACME_DIRECTORY_URL = "https://localhost:14000/dir"
    settings.ACME_EAB_KEY_ID    = ""
    settings.ACME_EAB_HMAC_KEY  = ""
    settings.ACME_EMAIL         = "Admin@Acme-Test.localhost"
    settings.ACME_KEY_TYPE      = "ec"
    settings.ACME_KEY_SIZE      = 256
    settings.ACCOUNT_STORE_PATH = str(tmp_path / "account.json")
    settings.ACME_INSECURE      = True
    settings.ACME_CA_BUNDLE     = ""

    yield settings

    for k, v in originals.items():
        setattr(settings, k, v)


# ─── Provisioner config stub ──────────────────────────────────────────────────

class StaticConfig:
    """Configuration provider with fixed values, for provisioner tests."""

    def __init__(
        self,
        email: str = "Ops@Example.com",
        family: KeyFamily = KeyFamily.EC,
        size: int = 256,
        directory: str = "https://acme.test/directory",
    ) -> None:
        self.email = email
        self.family = family
        self.size = size
        self.directory = directory

    def directory_url(self) -> str:
        return self.directory

    def contact_email(self) -> str:
        return self.email

    def key_type_config(self) -> KeyTypeConfig:
        return KeyTypeConfig(family=self.family, size=self.size)


@pytest.fixture()
def static_config():
    return StaticConfig()
