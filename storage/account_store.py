"""
Key-value persistence for the ACME account.

The provisioner only sees the ``AccountStore`` contract: ``get()`` returns the
stored fields as bytes (an empty mapping when nothing has been stored yet) and
``put()`` writes a whole set of fields as one logical write.

Schema (``StoreField``):
  v1  acme-private-key + acme-registration (JSON {"URI": ...})   read-only
  v2  acme-private-key + acme-registration-url                    current

File layout of ``FileAccountStore`` (one JSON document, mode 0o600):
  {"acme-private-key": "<base64>", "acme-registration-url": "<base64>"}
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Mapping, Protocol

from provisioning.errors import StoreLookupError
from storage.atomic import atomic_write_bytes

logger = logging.getLogger(__name__)


class StoreField(str, Enum):
    PRIVATE_KEY = "acme-private-key"
    REGISTRATION_URL = "acme-registration-url"
    LEGACY_REGISTRATION = "acme-registration"


class AccountStore(Protocol):
    def get(self) -> Mapping[str, bytes]:
        ...

    def put(self, data: Mapping[str, bytes]) -> None:
        ...


class MemoryAccountStore:
    """In-process store; also what the tests seed legacy layouts into."""

    def __init__(self, data: Mapping[str, bytes] | None = None) -> None:
        self._data: dict[str, bytes] = dict(data or {})
        self.put_calls = 0

    def get(self) -> dict[str, bytes]:
        return dict(self._data)

    def put(self, data: Mapping[str, bytes]) -> None:
        self.put_calls += 1
        self._data = dict(data)


class FileAccountStore:
    """Stores all account fields in a single JSON file, replaced atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def get(self) -> dict[str, bytes]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreLookupError(f"could not read account store {self.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise StoreLookupError(f"account store {self.path} is not a JSON object")

        try:
            return {k: base64.b64decode(v, validate=True) for k, v in raw.items()}
        except (TypeError, binascii.Error) as exc:
            raise StoreLookupError(f"account store {self.path} holds a non-base64 value: {exc}") from exc

    def put(self, data: Mapping[str, bytes]) -> None:
        doc = {k: base64.b64encode(v).decode("ascii") for k, v in data.items()}
        atomic_write_bytes(self.path, json.dumps(doc, indent=2, sort_keys=True).encode("utf-8"))
        logger.debug("Wrote %d account field(s) to %s", len(doc), self.path)
