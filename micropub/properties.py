import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from django.core.exceptions import ValidationError
from django.core.validators import URLValidator

from .errors import INVALID_REQUEST, MicropubError

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

# Micropub legacy field names
LEGACY_PROPERTIES = {
    "slug": "mp-slug",
    "syndicate-to": "mp-syndicate-to",
}

_url_validator = URLValidator(schemes=["http", "https"])


def is_list(value) -> bool:
    return isinstance(value, (list, tuple))


def is_valid_url(value) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        _url_validator(value)
    except ValidationError:
        return False
    return True


def is_form_content_type(content_type: str | None) -> bool:
    media_type = (content_type or "").split(";")[0].strip().lower()
    return media_type in FORM_CONTENT_TYPES


def _form_to_mapping(query_dict) -> dict:
    data = {}
    for key in query_dict:
        values = query_dict.getlist(key)
        if key.endswith("[]"):
            name = key[:-2]
            existing = data.get(name, [])
            data[name] = (existing if is_list(existing) else [existing]) + list(values)
        elif key in data:
            existing = data[key]
            data[key] = (existing if is_list(existing) else [existing]) + list(values)
        else:
            data[key] = values[0] if len(values) == 1 else list(values)
    return data


def raw_body(request) -> dict:
    """Decode the request body into a plain mapping, JSON or form-encoded."""
    if request.content_type and "json" in request.content_type:
        try:
            raw = json.loads(request.body or "{}")
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.info("Micropub body is not valid JSON", extra={"micropub_path": request.path})
            return {}
        return raw if isinstance(raw, dict) else {}
    return _form_to_mapping(request.POST)


def _post_type(vocabulary) -> str:
    vocabulary = str(vocabulary)
    return vocabulary[2:] if vocabulary.startswith("h-") else vocabulary


@dataclass(frozen=True)
class NormalizedProperties:
    properties: dict = field(default_factory=dict)
    action: Optional[str] = None
    type: Optional[str] = None
    url: Optional[str] = None


class PropertyNormalizer:
    """Normalizes form-encoded and JSON Micropub bodies into Mf2 properties.

    Create requests yield the ``properties`` object of the Mf2 JSON with
    legacy names mapped to their ``mp-`` commands. Action requests
    (update, delete, ...) keep the top-level body, with ``action`` and
    ``url`` left as scalars.
    """

    def normalize(self, raw: dict, content_type_is_form: bool) -> NormalizedProperties:
        data = {key: value for key, value in raw.items() if key != "access_token"}

        if content_type_is_form and data.get("h"):
            data = self.form_to_json(data)

        if data.get("type"):
            return self._normalize_create(data)

        if data.get("action"):
            return self._normalize_action(data)

        raise MicropubError(
            INVALID_REQUEST,
            "properties",
            "Input could not be parsed as either JSON, x-www-form-urlencoded or "
            "multipart/form-data: No entry type or 'action' property found.",
        )

    @staticmethod
    def form_to_json(data: dict) -> dict:
        translated = {}
        for key, value in data.items():
            if key in ("action", "url"):
                translated[key] = value
            elif key == "h":
                vocabulary = value[0] if is_list(value) and value else value
                translated["type"] = [f"h-{vocabulary}"]
            else:
                properties = translated.setdefault("properties", {})
                properties[key] = list(value) if is_list(value) else [value]
        return translated

    def _normalize_create(self, data: dict) -> NormalizedProperties:
        vocabularies = data["type"]
        if not is_list(vocabularies):
            raise MicropubError(
                INVALID_REQUEST,
                "type",
                "Property 'type' must be an array of Microformat vocabularies.",
            )

        properties = data.get("properties")
        if not properties or not isinstance(properties, dict):
            raise MicropubError(
                INVALID_REQUEST,
                "properties",
                "Properties must be specified in a properties object.",
            )

        renamed = {}
        for key, value in properties.items():
            renamed[LEGACY_PROPERTIES.get(key, key)] = value

        return NormalizedProperties(
            properties=renamed,
            action="create",
            type=_post_type(vocabularies[0]),
        )

    def _normalize_action(self, data: dict) -> NormalizedProperties:
        url = data.get("url")
        if not is_valid_url(url):
            raise MicropubError(
                INVALID_REQUEST,
                "url",
                "This Micropub action requires a valid URL property.",
            )
        return NormalizedProperties(
            properties=data,
            action=str(data["action"]),
            url=url,
        )
