"""Thin httpx wrapper for direct connections to the Qlik Sense Repository Service."""

from __future__ import annotations

import json
import logging
import secrets
import ssl
import string
from dataclasses import dataclass
from typing import Dict, Optional, Union

import httpx

logger = logging.getLogger("rulewarmer.qrs")

XRFKEY_LENGTH = 16
XRFKEY_HEADER = "X-Qlik-Xrfkey"
USER_HEADER = "X-Qlik-User"
SECURITY_HEADER = "X-Qlik-Security"

_XRFKEY_ALPHABET = string.ascii_letters + string.digits
_BASE_SECURITY_CONTEXT = "SecureRequest=true; LicenseContext=UserAccess; Context=ManagementAccess;"

Verify = Union[ssl.SSLContext, bool]


class QRSError(RuntimeError):
    """Raised when a repository request fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class QRSIdentity:
    """The user a direct connection acts as."""

    user_directory: str
    user_id: str

    def header_value(self) -> str:
        return f"UserDirectory={self.user_directory}; UserId={self.user_id}"


def build_security_header(user: str, upn_suffix: str | None = None) -> str:
    """Return the ``X-Qlik-Security`` value for ``user``.

    With a suffix, the user principal name is the upper-cased user followed by
    the suffix as given.
    """

    if upn_suffix is None:
        return _BASE_SECURITY_CONTEXT
    return f"{_BASE_SECURITY_CONTEXT} UserPrincipleName={user.upper()}{upn_suffix};"


def generate_xrfkey() -> str:
    return "".join(secrets.choice(_XRFKEY_ALPHABET) for _ in range(XRFKEY_LENGTH))


def _normalize_base_url(base_url: str, port: int) -> httpx.URL:
    cleaned = (base_url or "").strip()
    if not cleaned:
        raise ValueError("Repository URL must not be empty")
    url = httpx.URL(cleaned)
    if not url.host:
        raise ValueError(f"Repository URL '{cleaned}' has no host")
    return httpx.URL(scheme=url.scheme, host=url.host, port=port, path="/")


def _error_detail(payload: object) -> str | None:
    """Pull a human-readable reason out of a repository error body."""

    if isinstance(payload, list):
        details = [_error_detail(item) for item in payload]
        joined = "; ".join(detail for detail in details if detail)
        return joined or None
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            reason = _error_detail(payload.get(key))
            if reason:
                return reason
        return None
    if isinstance(payload, str):
        return payload.strip() or None
    return None


def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
    status_code = response.status_code
    if status_code < 400:
        return

    if status_code == 401:
        raise QRSError("Authentication with the repository service failed", status_code=status_code)
    if status_code == 403:
        raise QRSError(f"The repository service denied access to {path}", status_code=status_code)
    if status_code == 404:
        raise QRSError(f"Repository endpoint {path} not found", status_code=status_code)

    message = f"{method} {path} failed with status {status_code}"
    try:
        parsed: object = response.json()
    except ValueError:
        parsed = response.text
    raise QRSError(_error_detail(parsed) or message, status_code=status_code)


class QRSClient:
    """Direct (certificate-authenticated) connection acting as one identity.

    The client is usable synchronously through :meth:`get`/:meth:`post` and
    asynchronously through :meth:`get_async`/:meth:`post_async`. Headers added
    to :attr:`custom_headers` are sent with every request.
    """

    def __init__(
        self,
        base_url: str,
        identity: QRSIdentity,
        *,
        port: int,
        verify: Verify = True,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        async_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = _normalize_base_url(base_url, port)
        self._identity = identity
        self._verify = verify
        self._timeout = timeout
        self._transport = transport
        self._async_transport = async_transport
        self._xrfkey = generate_xrfkey()
        self._client: Optional[httpx.Client] = None
        self._async_client: Optional[httpx.AsyncClient] = None
        self.custom_headers: Dict[str, str] = {}

    @property
    def url(self) -> str:
        return str(self._base_url)

    @property
    def identity(self) -> QRSIdentity:
        return self._identity

    def get(self, path: str) -> str:
        return self._send("GET", path)

    def post(self, path: str, body: str = "") -> str:
        return self._send("POST", path, body)

    async def get_async(self, path: str) -> str:
        return await self._send_async("GET", path)

    async def post_async(self, path: str, body: str = "") -> str:
        return await self._send_async("POST", path, body)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    async def aclose(self) -> None:
        if self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None

    def __enter__(self) -> "QRSClient":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.close()

    async def __aenter__(self) -> "QRSClient":
        return self

    async def __aexit__(self, *_exc_info) -> None:
        await self.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {
            XRFKEY_HEADER: self._xrfkey,
            USER_HEADER: self._identity.header_value(),
            "Accept": "application/json",
        }
        headers.update(self.custom_headers)
        return headers

    def _build_request(self, client: httpx.Client | httpx.AsyncClient, method: str, path: str, body: str | None):
        if not path.startswith("/"):
            path = "/" + path
        url = self._base_url.join(path).copy_merge_params({"xrfkey": self._xrfkey})
        headers = self._headers()
        content = None
        if method == "POST":
            headers["Content-Type"] = "application/json"
            content = (body or "").encode("utf-8")
        return client.build_request(method, url, headers=headers, content=content)

    def _send(self, method: str, path: str, body: str | None = None) -> str:
        if self._client is None:
            self._client = httpx.Client(
                verify=self._verify,
                timeout=self._timeout,
                transport=self._transport,
            )
        request = self._build_request(self._client, method, path, body)
        logger.debug("%s %s as %s", method, path, self._identity.header_value())
        try:
            response = self._client.send(request)
        except httpx.RequestError as exc:
            raise QRSError(f"Failed to contact repository service at {self.url}: {exc}") from exc
        _raise_for_status(response, method, path)
        return response.text

    async def _send_async(self, method: str, path: str, body: str | None = None) -> str:
        if self._async_client is None:
            self._async_client = httpx.AsyncClient(
                verify=self._verify,
                timeout=self._timeout,
                transport=self._async_transport,
            )
        request = self._build_request(self._async_client, method, path, body)
        logger.debug("%s %s as %s", method, path, self._identity.header_value())
        try:
            response = await self._async_client.send(request)
        except httpx.RequestError as exc:
            raise QRSError(f"Failed to contact repository service at {self.url}: {exc}") from exc
        _raise_for_status(response, method, path)
        return response.text


def parse_count(payload: str) -> int | str:
    """Return the ``value`` of a ``/count`` response, or the raw text."""

    try:
        data = json.loads(payload)
    except ValueError:
        return payload.strip()
    if isinstance(data, dict) and isinstance(data.get("value"), int):
        return data["value"]
    return payload.strip()


__all__ = [
    "QRSClient",
    "QRSError",
    "QRSIdentity",
    "SECURITY_HEADER",
    "build_security_header",
    "generate_xrfkey",
    "parse_count",
]
