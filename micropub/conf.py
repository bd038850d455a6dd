from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from django.conf import settings
from django.utils.module_loading import import_string

DEFAULT_TOKEN_ENDPOINT = "https://tokens.indieauth.com/token"
DEFAULT_HTTP_TIMEOUT = 10


def _site_base_url(request) -> str:
    configured = getattr(settings, "MICROPUB_BASE_URL", "")
    if configured:
        return configured.rstrip("/")
    if request is None:
        return ""
    base = request.build_absolute_uri("/")
    return base[:-1] if base.endswith("/") else base


def _default_upload_root() -> Path:
    media_root = getattr(settings, "MEDIA_ROOT", "") or "media"
    return Path(media_root) / "temp"


@dataclass(frozen=True)
class MicropubSettings:
    """Read-only snapshot of the ``MICROPUB_*`` settings for one request."""

    base_url: str
    me_path: Optional[str] = None
    token_endpoint: str = DEFAULT_TOKEN_ENDPOINT
    token_verifier: Optional[Callable] = None
    upload_root: Path = Path("media/temp")
    site_root: Path = Path(".")
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @property
    def me(self) -> str:
        if self.me_path is None:
            return self.base_url
        return f"{self.base_url}/{self.me_path}"

    @classmethod
    def from_settings(cls, request=None) -> "MicropubSettings":
        verifier = getattr(settings, "MICROPUB_TOKEN_VERIFIER", None)
        if isinstance(verifier, str):
            verifier = import_string(verifier)
        upload_root = getattr(settings, "MICROPUB_UPLOAD_ROOT", None) or _default_upload_root()
        site_root = getattr(settings, "MICROPUB_SITE_ROOT", None) or getattr(settings, "BASE_DIR", ".")
        return cls(
            base_url=_site_base_url(request),
            me_path=getattr(settings, "MICROPUB_ME_PATH", None),
            token_endpoint=getattr(settings, "MICROPUB_TOKEN_ENDPOINT", None) or DEFAULT_TOKEN_ENDPOINT,
            token_verifier=verifier,
            upload_root=Path(upload_root),
            site_root=Path(site_root),
            http_timeout=getattr(settings, "MICROPUB_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        )
