"""
ACME RFC 8555 account client.

Two layers:

* ``AcmeClient``: low-level and **stateless**: directory, nonce and account
  URL are passed in by the caller, which keeps it easy to test with mocked
  HTTP.
* ``AcmeDirectoryClient``: the register / fetch / update contract the
  provisioner consumes.  It discovers the directory and nonces itself and
  turns every failure into ``ProtocolError`` carrying the attempted URI.

RFC 8555 compliance notes
--------------------------
* Fetching an account is an empty update (POST ``{}`` to the account URL,
  §7.3.3); servers reject POST-as-GET on account resources.
* badNonce retry: ACME servers return a fresh ``Replay-Nonce`` header even on
  error responses.  ``_post_signed`` retries up to ``_NONCE_RETRIES`` times.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests

from acme_client import jws as jwslib
from acme_client.crypto import AccountKey
from provisioning.errors import ProtocolError

logger = logging.getLogger(__name__)

_NONCE_RETRIES = 3

TosCallback = Callable[[str], bool]


class AcmeError(Exception):
    """Raised when the ACME server returns an error response."""

    def __init__(self, status_code: int, body: dict, new_nonce: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.new_nonce = new_nonce
        problem_type = body.get("type", "unknown")
        detail = body.get("detail", str(body))
        super().__init__(f"ACME {status_code}: {problem_type}: {detail}")


@dataclass
class AccountRecord:
    """An ACME account as the authority reports it."""

    uri: str
    contact: list[str] = field(default_factory=list)
    status: Optional[str] = None


class AcmeClient:
    """Implements the account endpoints of RFC 8555 over a requests.Session."""

    def __init__(
        self,
        directory_url: str,
        timeout: int = 30,
        ca_bundle: str = "",
        insecure: bool = False,
    ) -> None:
        self.directory_url = directory_url
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": "acme-account-keeper/1.0"})

        if insecure:
            import urllib3
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            self._session.verify = False
        elif ca_bundle:
            self._session.verify = ca_bundle

    # ── Directory & nonce ─────────────────────────────────────────────────

    def get_directory(self) -> dict:
        """GET /directory — discover ACME endpoint URLs."""
        resp = self._session.get(self.directory_url, timeout=self.timeout)
        resp.raise_for_status()
        directory = resp.json()
        if not isinstance(directory, dict):
            raise AcmeError(resp.status_code, {"detail": "Directory is not a JSON object"})
        return directory

    def get_nonce(self, directory: dict) -> str:
        """HEAD /newNonce — fetch a fresh anti-replay nonce."""
        resp = self._session.head(directory["newNonce"], timeout=self.timeout)
        nonce = resp.headers.get("Replay-Nonce")
        if not nonce:
            raise AcmeError(resp.status_code, {"detail": "No Replay-Nonce header"})
        return nonce

    # ── Account ───────────────────────────────────────────────────────────

    def new_account(
        self,
        account_key: AccountKey,
        payload: dict,
        nonce: str,
        directory: dict,
    ) -> tuple[str, dict, str]:
        """
        POST /newAccount with *payload*.
        Returns (account_url, account_body, new_nonce).
        """
        resp = self._post_signed(payload, account_key, nonce, directory["newAccount"], directory=directory)
        return resp.headers.get("Location", ""), _json_or_empty(resp), resp.headers.get("Replay-Nonce", "")

    def fetch_account(
        self,
        account_key: AccountKey,
        account_url: str,
        nonce: str,
        directory: dict,
    ) -> tuple[dict, str]:
        """POST {} to the account URL. Returns (account_body, new_nonce)."""
        resp = self._post_signed({}, account_key, nonce, account_url, account_url, directory=directory)
        return _json_or_empty(resp), resp.headers.get("Replay-Nonce", "")

    def update_account(
        self,
        account_key: AccountKey,
        account_url: str,
        contact: list[str],
        nonce: str,
        directory: dict,
    ) -> tuple[dict, str]:
        """POST {"contact": [...]} to the account URL. Returns (account_body, new_nonce)."""
        resp = self._post_signed(
            {"contact": contact}, account_key, nonce, account_url, account_url, directory=directory
        )
        return _json_or_empty(resp), resp.headers.get("Replay-Nonce", "")

    # ── Internal ──────────────────────────────────────────────────────────

    def _post_signed(
        self,
        payload: dict | None,
        account_key: AccountKey,
        nonce: str,
        url: str,
        account_url: str | None = None,
        directory: dict | None = None,
    ) -> requests.Response:
        """
        Sign *payload* with *account_key* and POST to *url*, retrying up to
        `_NONCE_RETRIES` times on `badNonce` responses.

        The nonce for a retry comes from the error response's Replay-Nonce
        header when present, otherwise from a fresh HEAD /newNonce.
        """
        current_nonce = nonce
        for attempt in range(_NONCE_RETRIES):
            body = jwslib.sign_request(payload, account_key, current_nonce, url, account_url)
            resp = self._session.post(
                url,
                json=body,
                headers={
                    "Content-Type": "application/jose+json",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
            if resp.ok:
                return resp

            try:
                error_body = resp.json()
            except ValueError:
                error_body = {"detail": resp.text}
            if not isinstance(error_body, dict):
                error_body = {"detail": resp.text}

            if "badNonce" in str(error_body.get("type", "")) and attempt < _NONCE_RETRIES - 1:
                logger.debug("badNonce from %s, retrying (attempt %d)", url, attempt + 1)
                fresh = resp.headers.get("Replay-Nonce")
                if fresh:
                    current_nonce = fresh
                    continue
                if directory is None:
                    directory = self.get_directory()
                current_nonce = self.get_nonce(directory)
                continue

            raise AcmeError(resp.status_code, error_body, resp.headers.get("Replay-Nonce", ""))

        raise AcmeError(0, {"detail": "Exceeded nonce retry limit"})


class AcmeDirectoryClient:
    """
    Register / fetch / update an ACME account against one directory.

    Every call discovers the directory and a fresh nonce, so instances hold no
    per-account state.  Failures of any kind surface as ProtocolError with the
    URI that was being called.
    """

    def __init__(
        self,
        client: AcmeClient,
        eab_key_id: str = "",
        eab_hmac_key: str = "",
    ) -> None:
        self.client = client
        self.eab_key_id = eab_key_id
        self.eab_hmac_key = eab_hmac_key

    @property
    def directory_url(self) -> str:
        return self.client.directory_url

    def register(
        self,
        account_key: AccountKey,
        contact: list[str],
        accept_tos: TosCallback,
    ) -> AccountRecord:
        """
        Create a new account.  When the directory advertises terms of service,
        *accept_tos* is called with their URL and must return True.
        """
        uri = self.directory_url
        try:
            directory = self.client.get_directory()
            uri = directory["newAccount"]

            tos_url = (directory.get("meta") or {}).get("termsOfService")
            if tos_url and not accept_tos(tos_url):
                raise ProtocolError(uri, f"terms of service {tos_url} were not accepted")

            payload: dict = {"contact": list(contact), "termsOfServiceAgreed": True}
            if self.eab_key_id and self.eab_hmac_key:
                payload["externalAccountBinding"] = jwslib.create_eab_jws(
                    account_key, self.eab_key_id, self.eab_hmac_key, uri
                )

            nonce = self.client.get_nonce(directory)
            account_url, body, _ = self.client.new_account(account_key, payload, nonce, directory)
        except ProtocolError:
            raise
        except (AcmeError, requests.RequestException, KeyError, ValueError) as exc:
            raise ProtocolError(uri, exc) from exc

        if not account_url:
            raise ProtocolError(uri, "newAccount response carried no Location header")
        return _record_from_body(account_url, body, default_contact=contact)

    def get_account(self, account_key: AccountKey, uri: str) -> AccountRecord:
        """Fetch the account at *uri* as the server currently has it."""
        try:
            directory = self.client.get_directory()
            nonce = self.client.get_nonce(directory)
            body, _ = self.client.fetch_account(account_key, uri, nonce, directory)
        except (AcmeError, requests.RequestException, KeyError, ValueError) as exc:
            raise ProtocolError(uri, exc) from exc
        return _record_from_body(uri, body)

    def update_account(self, account_key: AccountKey, record: AccountRecord) -> AccountRecord:
        """Push *record*'s contact list to the server and return the updated account."""
        try:
            directory = self.client.get_directory()
            nonce = self.client.get_nonce(directory)
            body, _ = self.client.update_account(
                account_key, record.uri, list(record.contact), nonce, directory
            )
        except (AcmeError, requests.RequestException, KeyError, ValueError) as exc:
            raise ProtocolError(record.uri, exc) from exc
        return _record_from_body(record.uri, body, default_contact=record.contact)


def _json_or_empty(resp: requests.Response) -> dict:
    if not resp.content:
        return {}
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _record_from_body(
    uri: str,
    body: dict,
    default_contact: list[str] | None = None,
) -> AccountRecord:
    contact = body.get("contact")
    if contact is None:
        contact = list(default_contact or [])
    return AccountRecord(uri=uri, contact=list(contact), status=body.get("status"))


def make_client() -> AcmeDirectoryClient:
    """
    Create an AcmeDirectoryClient from the current application settings.
    Late-imports config to avoid circular imports at module load time.
    """
    from config import settings  # noqa: PLC0415

    return AcmeDirectoryClient(
        AcmeClient(
            directory_url=settings.directory_url(),
            timeout=settings.ACME_TIMEOUT,
            ca_bundle=settings.ACME_CA_BUNDLE,
            insecure=settings.ACME_INSECURE,
        ),
        eab_key_id=settings.ACME_EAB_KEY_ID,
        eab_hmac_key=settings.ACME_EAB_HMAC_KEY,
    )
