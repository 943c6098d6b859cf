"""
JWK / JWS / EAB utilities for the ACME protocol (RFC 8555 + RFC 8739).

Uses *josepy* (the library powering Certbot) for the JWK representation and
the JWA signature algorithms.

Responsibilities (boundary with acme_client/crypto.py):
  - Pick the JWS algorithm for an RSA or EC account key
  - Sign ACME POST bodies as JWS (with jwk or kid header)
  - Build the EAB outer-JWS for EAB-capable CAs (DigiCert, ZeroSSL, Sectigo)
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any

from josepy import jwa
from josepy.jwk import JWKEC, JWKRSA

from acme_client.crypto import AccountKey

# P-224 has no registered JWS algorithm, so such keys cannot sign requests.
_EC_ALGORITHMS = {
    "secp256r1": jwa.ES256,
    "secp384r1": jwa.ES384,
    "secp521r1": jwa.ES512,
}


def signature_algorithm(account_key: AccountKey) -> jwa.JWASignature:
    """Return the JWA algorithm for *account_key* (RS256 or ES256/384/512)."""
    if isinstance(account_key, JWKRSA):
        return jwa.RS256
    if isinstance(account_key, JWKEC):
        curve = account_key.key.curve.name
        try:
            return _EC_ALGORITHMS[curve]
        except KeyError:
            raise ValueError(f"no JWS algorithm for EC curve {curve}") from None
    raise ValueError(f"unsupported account key: {type(account_key).__name__}")


def public_jwk(account_key: AccountKey) -> dict[str, Any]:
    """Public JWK of the account key as a JSON-ready dict (kty included)."""
    pub = account_key.public_key().fields_to_partial_json()
    pub["kty"] = account_key.typ
    return pub


# ─── JWS signing ─────────────────────────────────────────────────────────────


def sign_request(
    payload: dict | None,
    account_key: AccountKey,
    nonce: str,
    url: str,
    account_url: str | None = None,
) -> dict:
    """
    Sign an ACME request payload and return the JWS dict to POST.

    If *account_url* is None the JWS header uses the full JWK (used for
    newAccount).  If *account_url* is set the header uses the shorter "kid"
    form (used for all subsequent requests).
    """
    alg = signature_algorithm(account_key)
    header: dict[str, Any] = {
        "alg": alg.name,
        "nonce": nonce,
        "url": url,
    }
    if account_url:
        header["kid"] = account_url
    else:
        header["jwk"] = public_jwk(account_key)

    protected = _b64url(json.dumps(header).encode())
    if payload is None:
        payload_b64 = ""
    else:
        payload_b64 = _b64url(json.dumps(payload).encode())

    signing_input = f"{protected}.{payload_b64}".encode()
    signature = alg.sign(account_key.key, signing_input)

    return {
        "protected": protected,
        "payload": payload_b64,
        "signature": _b64url(signature),
    }


# ─── EAB (External Account Binding) ──────────────────────────────────────────


def create_eab_jws(
    account_key: AccountKey,
    eab_kid: str,
    eab_hmac_key_b64url: str,
    new_account_url: str,
) -> dict:
    """
    Build the EAB outer-JWS required by EAB-capable CAs.

    Per RFC 8739:
      - Protected header: {"alg":"HS256","kid":<eab_kid>,"url":<newAccount url>}
      - Payload: the account public JWK
      - Signature: HMAC-SHA256 keyed with the decoded EAB HMAC key

    Raises ValueError if eab_kid is empty, or the HMAC key is not base64url or
    decodes to fewer than 16 bytes.
    """
    if not eab_kid or not eab_kid.strip():
        raise ValueError("EAB key ID (eab_kid) cannot be empty")
    if not eab_hmac_key_b64url or not eab_hmac_key_b64url.strip():
        raise ValueError("EAB HMAC key (eab_hmac_key_b64url) cannot be empty")

    try:
        hmac_key = _b64url_decode(eab_hmac_key_b64url)
    except ValueError as exc:
        raise ValueError(f"EAB HMAC key is not valid base64url: {exc!s}") from exc

    if len(hmac_key) < 16:
        raise ValueError(
            f"EAB HMAC key is too short: {len(hmac_key)} bytes. "
            f"Must be at least 16 bytes (128 bits) per RFC 8555."
        )

    eab_header = {
        "alg": "HS256",
        "kid": eab_kid,
        "url": new_account_url,
    }
    protected = _b64url(json.dumps(eab_header).encode())
    payload = _b64url(json.dumps(public_jwk(account_key)).encode())

    signing_input = f"{protected}.{payload}".encode()
    mac = hmac.new(hmac_key, signing_input, hashlib.sha256).digest()

    return {
        "protected": protected,
        "payload": payload,
        "signature": _b64url(mac),
    }


# ─── Internal helpers ─────────────────────────────────────────────────────────


def _b64url(data: bytes) -> str:
    """URL-safe base64 encoding with no padding (as required by JOSE)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(s: str) -> bytes:
    """URL-safe base64 decode, adding padding as needed."""
    pad = 4 - len(s) % 4
    if pad != 4:
        s += "=" * pad
    return base64.urlsafe_b64decode(s)
