"""Bearer token verification for Micropub requests.

A token is verified either by a local callable registered by the host
application (``MICROPUB_TOKEN_VERIFIER``) or by asking a remote IndieAuth
token endpoint. Both return a token descriptor with ``me``, ``iss``,
``client_id``, ``iat`` and ``scope``, or ``error``/``error_description``.
The descriptor's ``me`` must match the site's identity.
"""
import json
import logging
from dataclasses import dataclass, field
from http.client import HTTPException
from typing import Callable, Mapping, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .conf import DEFAULT_HTTP_TIMEOUT, DEFAULT_TOKEN_ENDPOINT
from .errors import FORBIDDEN, INTERNAL_ERROR, INVALID_REQUEST, UNAUTHORIZED, MicropubError

logger = logging.getLogger(__name__)


def _parse_scope(scope_value) -> tuple[str, ...]:
    if isinstance(scope_value, (list, tuple)):
        scope_value = " ".join(str(item) for item in scope_value)
    if isinstance(scope_value, str):
        return tuple(s for s in scope_value.split() if s)
    return ()


def _token_from_post(request) -> str | None:
    token = request.POST.get("access_token") or request.POST.get("access_token[]")
    if isinstance(token, str) and token:
        return token
    return None


def _token_from_json(request) -> str | None:
    try:
        raw = json.loads(request.body or "{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(raw, dict):
        return None
    token_value = raw.get("access_token")
    if isinstance(token_value, list):
        token_value = token_value[0] if token_value else None
    if isinstance(token_value, str) and token_value:
        return token_value
    return None


def bearer_token(request) -> str | None:
    """Return the presented token; the Authorization header wins over the body."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, credentials = auth_header.strip().partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    if request.content_type and "json" in request.content_type:
        return _token_from_json(request)
    return _token_from_post(request)


@dataclass(frozen=True)
class AuthResult:
    me: str
    client_id: Optional[str] = None
    issuer: Optional[str] = None
    issued_at: Optional[object] = None
    scope: tuple[str, ...] = ()
    token: str = field(default="", repr=False)

    type = "indie"

    def has_scope(self, name: str) -> bool:
        return name in self.scope

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "me": self.me,
            "issued_by": self.issuer,
            "client_id": self.client_id,
            "issued_at": self.issued_at,
            "scope": list(self.scope),
        }


class RemoteTokenVerifier:
    """Verifies a token against an IndieAuth token endpoint."""

    def __init__(self, endpoint: str = DEFAULT_TOKEN_ENDPOINT, timeout: float = DEFAULT_HTTP_TIMEOUT):
        self.endpoint = endpoint
        self.timeout = timeout

    def __call__(self, token: str) -> dict:
        verification_request = Request(
            self.endpoint,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {token}",
            },
        )
        try:
            with urlopen(verification_request, timeout=self.timeout) as response:
                body = response.read().decode("utf-8", errors="replace")
        except HTTPError as exc:
            descriptor = self._error_descriptor(exc)
            if descriptor is not None:
                return descriptor
            logger.warning(
                "Token endpoint request failed",
                extra={"micropub_token_endpoint": self.endpoint, "micropub_status": exc.code},
            )
            raise MicropubError(
                INTERNAL_ERROR,
                "token_endpoint",
                f"Token endpoint responded with status {exc.code}.",
            ) from exc
        except (URLError, TimeoutError, OSError, HTTPException) as exc:
            logger.warning(
                "Token endpoint unreachable",
                extra={"micropub_token_endpoint": self.endpoint, "micropub_error": str(exc)},
            )
            raise MicropubError(
                INTERNAL_ERROR,
                "token_endpoint",
                f"Token endpoint could not be reached: {exc}",
            ) from exc

        try:
            descriptor = json.loads(body or "{}")
        except json.JSONDecodeError as exc:
            raise MicropubError(
                INTERNAL_ERROR,
                "token_endpoint",
                "Token endpoint returned invalid JSON.",
            ) from exc
        if not isinstance(descriptor, dict):
            raise MicropubError(
                INTERNAL_ERROR,
                "token_endpoint",
                "Token endpoint returned an unexpected response.",
            )
        return descriptor

    @staticmethod
    def _error_descriptor(exc: HTTPError) -> dict | None:
        try:
            payload = json.loads(exc.read().decode("utf-8", errors="replace") or "{}")
        except (json.JSONDecodeError, OSError):
            return None
        if isinstance(payload, dict) and payload.get("error"):
            return payload
        return None


DESCRIPTOR_FIELDS = ("me", "iss", "client_id", "iat", "scope", "error", "error_description")


def _as_mapping(descriptor) -> Mapping:
    if isinstance(descriptor, Mapping):
        return descriptor
    if descriptor is None:
        return {}
    # Namedtuples, slotted classes and properties have no usable __dict__.
    return {name: getattr(descriptor, name, None) for name in DESCRIPTOR_FIELDS}


class AuthVerifier:
    """Turns a bearer token into an ``AuthResult`` for the configured identity.

    ``verify_token`` is the token verification strategy. It defaults to a
    ``RemoteTokenVerifier`` for ``token_endpoint``.
    """

    def __init__(
        self,
        me: str,
        verify_token: Callable[[str], object] | None = None,
        *,
        token_endpoint: str = DEFAULT_TOKEN_ENDPOINT,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        self.me = me
        self.verify_token = verify_token or RemoteTokenVerifier(token_endpoint, timeout)

    @classmethod
    def from_settings(cls, config) -> "AuthVerifier":
        return cls(
            config.me,
            config.token_verifier,
            token_endpoint=config.token_endpoint,
            timeout=config.http_timeout,
        )

    def verify(self, token: str | None) -> AuthResult:
        if not token:
            logger.info("Micropub request without access token")
            raise MicropubError(UNAUTHORIZED, "token", "No access token provided.")

        descriptor = _as_mapping(self.verify_token(token))
        if descriptor.get("error"):
            logger.info(
                "Access token rejected",
                extra={"micropub_token_error": descriptor.get("error")},
            )
            raise MicropubError(
                INVALID_REQUEST,
                descriptor.get("error"),
                descriptor.get("error_description"),
            )

        me = descriptor.get("me") or ""
        if me != self.me:
            logger.info(
                "Access token not authorized for this site",
                extra={"micropub_me": me, "micropub_expected_me": self.me},
            )
            raise MicropubError(FORBIDDEN, me, "Not authorized for this site.")

        return AuthResult(
            me=me,
            client_id=descriptor.get("client_id"),
            issuer=descriptor.get("iss"),
            issued_at=descriptor.get("iat"),
            scope=_parse_scope(descriptor.get("scope")),
            token=token,
        )
