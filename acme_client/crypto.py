"""
Account-key generation and PEM handling.

Boundary: this module owns the account key material (generate, encode,
decode).  Signing requests with that key lives in acme_client/jws.py.

EC key sizes map onto named curves:
  224 → P-224, 256 → P-256, 384 → P-384, 521 → P-521
Any other size falls back to P-384.  The fallback is kept as explicit policy
and is also flagged by config.Settings when the configuration is loaded.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from josepy.jwk import JWKEC, JWKRSA

from provisioning.errors import CryptoGenerationError, EncodingError

logger = logging.getLogger(__name__)

AccountKey = Union[JWKRSA, JWKEC]

_CURVES: dict[int, type[ec.EllipticCurve]] = {
    224: ec.SECP224R1,
    256: ec.SECP256R1,
    384: ec.SECP384R1,
    521: ec.SECP521R1,
}
FALLBACK_EC_SIZE = 384


class KeyFamily(str, Enum):
    RSA = "rsa"
    EC = "ec"


@dataclass(frozen=True)
class KeyTypeConfig:
    """Desired account key: RSA bit length, or EC size selecting a curve."""

    family: KeyFamily
    size: int


def is_supported_ec_size(size: int) -> bool:
    return size in _CURVES


def curve_for_size(size: int) -> ec.EllipticCurve:
    """Return the named curve for *size*, P-384 for anything unrecognised."""
    if not is_supported_ec_size(size):
        logger.warning(
            "EC key size %d is not one of %s, using the %d-bit curve",
            size, sorted(_CURVES), FALLBACK_EC_SIZE,
        )
        return _CURVES[FALLBACK_EC_SIZE]()
    return _CURVES[size]()


# ─── Generation ───────────────────────────────────────────────────────────────


def generate(config: KeyTypeConfig) -> tuple[bytes, AccountKey]:
    """
    Generate a fresh account key for *config*.

    Returns (pem_bytes, signer) where *pem_bytes* is PKCS#1 ("RSA PRIVATE KEY")
    for RSA or SEC1 ("EC PRIVATE KEY") for EC, and *signer* is the josepy JWK
    used to sign ACME requests.

    Raises CryptoGenerationError if the key cannot be generated (e.g. an RSA
    size the backend refuses).  No retries.
    """
    try:
        if config.family == KeyFamily.RSA:
            private_key = rsa.generate_private_key(
                public_exponent=65537,
                key_size=config.size,
                backend=default_backend(),
            )
            signer: AccountKey = JWKRSA(key=private_key)
        else:
            private_key = ec.generate_private_key(curve_for_size(config.size), default_backend())
            signer = JWKEC(key=private_key)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CryptoGenerationError(
            f"could not generate {config.family.value} account key of size {config.size}: {exc}"
        ) from exc

    return private_key_to_pem(private_key), signer


def private_key_to_pem(key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey) -> bytes:
    """Serialize a private key to unencrypted PEM (PKCS#1 for RSA, SEC1 for EC)."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


# ─── Loading ──────────────────────────────────────────────────────────────────


def pem_type(pem: bytes) -> str:
    """Return the type tag of the first PEM block, e.g. "EC PRIVATE KEY"."""
    for line in pem.decode("ascii", errors="replace").splitlines():
        line = line.strip()
        if line.startswith("-----BEGIN ") and line.endswith("-----"):
            return line[len("-----BEGIN "):-len("-----")]
    raise EncodingError("no PEM block found in account key data")


def load_signer(pem: bytes) -> AccountKey:
    """
    Decode a stored account key and wrap it as a josepy JWK.

    Raises EncodingError for anything that is not a PEM-encoded RSA or EC
    private key.
    """
    pem_type(pem)
    try:
        private_key = serialization.load_pem_private_key(pem, password=None, backend=default_backend())
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise EncodingError(f"could not parse account private key: {exc}") from exc

    if isinstance(private_key, rsa.RSAPrivateKey):
        return JWKRSA(key=private_key)
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return JWKEC(key=private_key)
    raise EncodingError(f"unsupported account key type: {type(private_key).__name__}")
