import logging
import mimetypes
import os
import string
from dataclasses import dataclass
from http.client import HTTPException
from pathlib import Path
from typing import Iterable, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import unquote, urlparse
from urllib.request import Request, urlopen

from django.core.exceptions import SuspiciousFileOperation
from django.core.files.base import ContentFile
from django.core.files.storage import FileSystemStorage
from django.utils.crypto import get_random_string
from django.utils.text import get_valid_filename

from .conf import DEFAULT_HTTP_TIMEOUT
from .errors import INTERNAL_ERROR, MicropubError
from .properties import is_list, is_valid_url

logger = logging.getLogger(__name__)

ATTACHMENT_KINDS = ("photo", "video", "audio")


@dataclass(frozen=True)
class AttachmentDescriptor:
    name: str
    mime_type: Optional[str]
    local_path: str
    error_code: int = 0
    size: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.mime_type,
            "tmp_name": self.local_path,
            "error": self.error_code,
            "size": self.size,
        }


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}".lower()


def _safe_filename(url: str) -> str:
    try:
        return get_valid_filename(os.path.basename(unquote(urlparse(url).path)) or "attachment")
    except SuspiciousFileOperation:
        return "attachment"


def _attachment_url(entry) -> str | None:
    # Mf2 alt text: {"value": url, "alt": "..."}
    if isinstance(entry, dict):
        entry = entry.get("value")
    if is_valid_url(entry):
        return entry
    return None


def uploaded_files(files) -> dict[str, list[AttachmentDescriptor]]:
    """Describe multipart uploads, keyed by field name without ``[]``."""
    uploads = {}
    for key, items in files.lists():
        name = key[:-2] if key.endswith("[]") else key
        for item in items:
            if hasattr(item, "temporary_file_path"):
                local_path = item.temporary_file_path()
            else:
                local_path = ""
            uploads.setdefault(name, []).append(
                AttachmentDescriptor(
                    name=item.name,
                    mime_type=item.content_type,
                    local_path=local_path,
                    error_code=0,
                    size=item.size,
                )
            )
    return uploads


class AttachmentResolver:
    """Resolves attachment URLs into files on disk.

    URLs on the site's own origin were uploaded through the media endpoint
    and are read from ``site_root``; anything else is downloaded into a
    fresh random folder below ``upload_root``.
    """

    def __init__(
        self,
        base_url: str,
        upload_root: Path,
        site_root: Path,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        self.base_url = base_url
        self.upload_root = Path(upload_root)
        self.site_root = Path(site_root)
        self.timeout = timeout

    @classmethod
    def from_settings(cls, config) -> "AttachmentResolver":
        return cls(config.base_url, config.upload_root, config.site_root, config.http_timeout)

    def resolve(
        self, values: Iterable, kind: str
    ) -> tuple[list[AttachmentDescriptor], MicropubError | None]:
        """Resolve every entry, returning the descriptors and the first failure."""
        attachments = []
        error = None
        if not is_list(values):
            values = [values]

        for entry in values:
            url = _attachment_url(entry)
            if url is None:
                logger.info(
                    "Skipping attachment without a valid URL",
                    extra={"micropub_kind": kind},
                )
                continue
            try:
                if self.is_local(url):
                    descriptor = self.resolve_local(url)
                else:
                    descriptor = self.fetch(url)
            except MicropubError as exc:
                if error is None:
                    error = exc
                continue
            if descriptor is not None:
                attachments.append(descriptor)
        return attachments, error

    def is_local(self, url: str) -> bool:
        return bool(self.base_url) and _origin(url) == _origin(self.base_url)

    def resolve_local(self, url: str) -> AttachmentDescriptor | None:
        relative = unquote(urlparse(url).path).lstrip("/")
        root = self.site_root.resolve()
        try:
            path = (root / relative).resolve()
            if root != path and root not in path.parents:
                logger.info("Local attachment outside site root", extra={"micropub_url": url})
                return None
            if not path.is_file():
                logger.info("Local attachment not found", extra={"micropub_url": url})
                return None
        except (OSError, ValueError) as exc:
            # e.g. an embedded null byte from %00
            logger.info(
                "Local attachment path is invalid",
                extra={"micropub_url": url, "micropub_error": str(exc)},
            )
            return None
        mime_type, _ = mimetypes.guess_type(path.name)
        return AttachmentDescriptor(
            name=path.name,
            mime_type=mime_type,
            local_path=str(path),
            error_code=0,
            size=path.stat().st_size,
        )

    def fetch(self, url: str) -> AttachmentDescriptor:
        try:
            with urlopen(Request(url), timeout=self.timeout) as response:
                data = response.read()
                final_url = response.geturl() or url
                content_type = response.headers.get("Content-Type")
        except HTTPError as exc:
            logger.warning(
                "Attachment download failed",
                extra={"micropub_url": url, "micropub_status": exc.code},
            )
            raise MicropubError(INTERNAL_ERROR, exc.code, f"Could not fetch {url}: {exc.reason}") from exc
        except (URLError, TimeoutError, OSError, ValueError, HTTPException) as exc:
            logger.warning(
                "Attachment download failed",
                extra={"micropub_url": url, "micropub_error": str(exc)},
            )
            raise MicropubError(INTERNAL_ERROR, url, f"Could not fetch {url}: {exc}") from exc

        filename = _safe_filename(final_url)
        if "." not in filename and content_type:
            extension = mimetypes.guess_extension(content_type.split(";")[0].strip()) or ""
            filename = f"{filename}{extension}"

        folder = get_random_string(8, allowed_chars=string.ascii_letters)
        storage = FileSystemStorage(location=self.upload_root)
        try:
            saved_name = storage.save(f"{folder}/{filename}", ContentFile(data))
        except OSError as exc:
            logger.warning(
                "Attachment could not be stored",
                extra={"micropub_url": url, "micropub_error": str(exc)},
            )
            raise MicropubError(INTERNAL_ERROR, url, f"Could not store {url}: {exc}") from exc

        return AttachmentDescriptor(
            name=filename,
            mime_type=content_type,
            local_path=storage.path(saved_name),
            error_code=0,
            size=len(data),
        )
