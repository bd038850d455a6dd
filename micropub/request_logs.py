import json
import logging
from urllib.parse import parse_qs

from django.http import RawPostDataException

logger = logging.getLogger(__name__)

MICROPUB_REDACT_FIELDS = {"access_token", "refresh_token", "client_secret"}
DEFAULT_REDACT_HEADERS = {"authorization", "cookie"}
MAX_LOG_BODY_CHARS = 10000


def _redact_secret(value: str) -> str:
    if not value:
        return value
    if len(value) <= 12:
        return "***"
    return f"{value[:6]}...{value[-4:]}"


def _normalized_key(key: str) -> str:
    normalized = key.lower()
    if normalized.endswith("[]"):
        normalized = normalized[:-2]
    return normalized


def _redact_payload(value, redact_fields: set[str]):
    if isinstance(value, dict):
        redacted = {}
        for key, item in value.items():
            if _normalized_key(str(key)) in redact_fields:
                redacted[key] = _redact_sensitive(item)
            else:
                redacted[key] = _redact_payload(item, redact_fields)
        return redacted
    if isinstance(value, list):
        return [_redact_payload(item, redact_fields) for item in value]
    return value


def _redact_sensitive(value):
    if isinstance(value, str):
        return _redact_secret(value)
    if isinstance(value, list):
        return [_redact_secret(item) if isinstance(item, str) else "***" for item in value]
    return "***"


def _truncate_body(body: str) -> str:
    if len(body) <= MAX_LOG_BODY_CHARS:
        return body
    return f"{body[:MAX_LOG_BODY_CHARS]}\n...(truncated)"


def _dump(payload) -> str:
    return _truncate_body(json.dumps(payload, indent=2, sort_keys=True, default=str))


def capture_request_body(request, *, redact_fields: set[str] | None = None) -> str:
    redact_fields = {item.lower() for item in (redact_fields or MICROPUB_REDACT_FIELDS)}
    content_type = request.content_type or ""

    if content_type.startswith("multipart/"):
        fields = {key: request.POST.getlist(key) for key in request.POST.keys()}
        files = {
            key: [{"name": item.name, "size": item.size, "content_type": item.content_type} for item in items]
            for key, items in request.FILES.lists()
        }
        return _dump({"fields": _redact_payload(fields, redact_fields), "files": files})

    try:
        body_text = (request.body or b"").decode("utf-8", errors="replace")
    except RawPostDataException:
        body_text = ""

    if "application/x-www-form-urlencoded" in content_type:
        if body_text:
            parsed = parse_qs(body_text, keep_blank_values=True)
        else:
            parsed = {key: values for key, values in request.POST.lists()}
        return _dump(_redact_payload(parsed, redact_fields)) if parsed else ""

    if not body_text:
        return ""

    if "json" in content_type:
        try:
            parsed = json.loads(body_text)
        except json.JSONDecodeError:
            return _truncate_body(body_text)
        return _dump(_redact_payload(parsed, redact_fields))

    return _truncate_body(body_text)


def capture_request_headers(request, *, redact_headers: set[str] | None = None) -> dict:
    redact_headers = {header.lower() for header in (redact_headers or DEFAULT_REDACT_HEADERS)}
    redacted = {}
    for key, value in request.headers.items():
        if key.lower() in redact_headers and isinstance(value, str):
            redacted[key] = _redact_secret(value)
        else:
            redacted[key] = value
    return redacted


def log_request_error(request, error, *, redact_fields: set[str] | None = None) -> None:
    """Log a failed Micropub request with secrets redacted."""
    logger.warning(
        "Micropub request failed: %s",
        error.error,
        extra={
            "micropub_method": request.method,
            "micropub_path": request.path,
            "micropub_status": error.status_code,
            "micropub_error": error.error,
            "micropub_property": str(error.property) if error.property is not None else "",
            "micropub_description": error.description or "",
            "micropub_request_headers": capture_request_headers(request),
            "micropub_request_body": capture_request_body(request, redact_fields=redact_fields),
        },
    )
