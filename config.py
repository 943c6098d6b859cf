"""
Application configuration via Pydantic Settings.
All values can be overridden by environment variables or a .env file.

``Settings`` is also the configuration provider the provisioner reads from:
``directory_url()``, ``key_type()``, ``key_size()``, ``contact_email()``.
"""
from __future__ import annotations

import warnings
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from acme_client.crypto import FALLBACK_EC_SIZE, KeyFamily, KeyTypeConfig, is_supported_ec_size

_PRESETS = {
    "letsencrypt":         "https://acme-v02.api.letsencrypt.org/directory",
    "letsencrypt_staging": "https://acme-staging-v02.api.letsencrypt.org/directory",
    "digicert":            "https://acme.digicert.com/v2/DV/directory",
    "zerossl":             "https://acme.zerossl.com/v2/DV90",
    "sectigo":             "https://acme.sectigo.com/v2/DV",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── CA Provider ────────────────────────────────────────────────────────
    CA_PROVIDER: Literal[
        "letsencrypt", "letsencrypt_staging", "digicert", "zerossl", "sectigo", "custom"
    ] = "letsencrypt_staging"
    # Only consulted when CA_PROVIDER="custom"
    ACME_DIRECTORY_URL: str = ""

    # ── EAB (required by DigiCert, ZeroSSL and Sectigo) ────────────────────
    ACME_EAB_KEY_ID: str = ""
    ACME_EAB_HMAC_KEY: str = ""

    # ── Account ────────────────────────────────────────────────────────────
    ACME_EMAIL: str = ""
    ACME_KEY_TYPE: Literal["rsa", "ec"] = "rsa"
    ACME_KEY_SIZE: int = 2048

    # ── Storage ────────────────────────────────────────────────────────────
    ACCOUNT_STORE_PATH: str = "./account.json"

    # ── ACME transport ─────────────────────────────────────────────────────
    ACME_CA_BUNDLE: str = ""       # Path to CA cert bundle; empty = system default
    ACME_INSECURE: bool = False    # Skip TLS verification (never use in production)
    ACME_TIMEOUT: int = 30

    @field_validator("ACME_KEY_TYPE", mode="before")
    @classmethod
    def normalise_key_type(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def validate_key_size(self) -> "Settings":
        if self.ACME_KEY_TYPE == "rsa" and self.ACME_KEY_SIZE < 1024:
            raise ValueError(f"ACME_KEY_SIZE={self.ACME_KEY_SIZE} is too small for an RSA key (minimum 1024)")
        if self.ACME_KEY_TYPE == "ec" and not is_supported_ec_size(self.ACME_KEY_SIZE):
            warnings.warn(
                f"ACME_KEY_SIZE={self.ACME_KEY_SIZE} is not a supported EC size (224, 256, 384, 521); "
                f"new account keys will use the {FALLBACK_EC_SIZE}-bit curve.",
                UserWarning,
                stacklevel=2,
            )
        return self

    @model_validator(mode="after")
    def resolve_acme_directory(self) -> "Settings":
        if self.CA_PROVIDER in _PRESETS:
            self.ACME_DIRECTORY_URL = _PRESETS[self.CA_PROVIDER]
        elif not self.ACME_DIRECTORY_URL:
            raise ValueError("ACME_DIRECTORY_URL must be set when CA_PROVIDER='custom'")
        return self

    # ── Provider accessors ─────────────────────────────────────────────────

    def directory_url(self) -> str:
        return self.ACME_DIRECTORY_URL

    def key_type(self) -> KeyFamily:
        return KeyFamily(self.ACME_KEY_TYPE)

    def key_size(self) -> int:
        return self.ACME_KEY_SIZE

    def contact_email(self) -> str:
        return self.ACME_EMAIL

    def key_type_config(self) -> KeyTypeConfig:
        return KeyTypeConfig(family=self.key_type(), size=self.key_size())


# Module-level singleton — import and use everywhere.
settings = Settings()
