"""Normalized view of an inbound Micropub request.

``MicropubRequest`` wraps a Django ``HttpRequest`` and exposes the Micropub
semantics of it: the verified token, the requested action, the post
properties in Mf2 form, the publishable content, ``mp-`` commands, update
operations and attachments. Everything is derived once and cached.

    micropub = MicropubRequest(request)
    if micropub.error:
        return micropub.error.to_response(request)
    micropub.action, micropub.content_fields, micropub.commands
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from django.utils.functional import cached_property
from markdownify import markdownify as html_to_markdown

from .attachments import ATTACHMENT_KINDS, AttachmentDescriptor, AttachmentResolver, uploaded_files
from .auth import AuthResult, AuthVerifier, bearer_token
from .conf import MicropubSettings
from .errors import INVALID_REQUEST, MicropubError
from .properties import NormalizedProperties, PropertyNormalizer, is_form_content_type, is_list, raw_body

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "mp-"
STATUS_PROPERTY = "post-status"
UPDATE_OPERATIONS = ("replace", "add", "delete")

COMMAND = "command"
ATTACHMENT = "attachment"
STATUS = "status"
HTML = "html"
SINGLE = "single"
MULTIPLE = "multiple"


def _html_values(values) -> list:
    return [item["html"] for item in values if isinstance(item, dict) and "html" in item]


# Evaluated in order, the first match wins.
CLASSIFICATION_RULES = (
    (COMMAND, lambda key, values: key.startswith(COMMAND_PREFIX)),
    (ATTACHMENT, lambda key, values: key in ATTACHMENT_KINDS),
    (STATUS, lambda key, values: key == STATUS_PROPERTY),
    (HTML, lambda key, values: bool(_html_values(values))),
    (SINGLE, lambda key, values: len(values) == 1),
    (MULTIPLE, lambda key, values: True),
)


def classify(key: str, values) -> str:
    for name, matches in CLASSIFICATION_RULES:
        if matches(key, values):
            return name
    return MULTIPLE


@dataclass
class DerivedContent:
    content: dict = field(default_factory=dict)
    commands: dict = field(default_factory=dict)
    status: Optional[str] = None
    html: list = field(default_factory=list)
    attachments: dict = field(default_factory=dict)
    update: Optional[dict] = None
    error: Optional[MicropubError] = None

    def record_error(self, error: MicropubError) -> None:
        if self.error is None:
            self.error = error

    def mark_html(self, key: str) -> None:
        if key not in self.html:
            self.html.append(key)


class ContentDeriver:
    """Splits Mf2 properties into content, commands, status and attachments."""

    def __init__(self, resolver: AttachmentResolver):
        self.resolver = resolver

    def derive(self, properties: dict, action: str) -> DerivedContent:
        derived = DerivedContent()
        try:
            if action == "create":
                self._derive_create(properties, derived)
            elif action == "update":
                self._derive_update(properties, derived)
        except MicropubError as exc:
            derived.content = {}
            derived.record_error(exc)
        return derived

    def _derive_create(self, properties: dict, derived: DerivedContent) -> None:
        for key, values in properties.items():
            if not is_list(values):
                raise MicropubError(
                    INVALID_REQUEST,
                    key,
                    "Values in JSON syntax must be arrays.",
                )
            kind = classify(key, values)
            if kind == COMMAND:
                derived.commands[key] = values[0] if values else None
            elif kind == ATTACHMENT:
                attachments, error = self.resolver.resolve(values, key)
                derived.attachments[key] = attachments
                if error is not None:
                    derived.record_error(error)
            elif kind == STATUS:
                derived.status = values[0] if values else None
            elif kind == HTML:
                derived.content[key] = _html_values(values)[0]
                derived.mark_html(key)
            elif kind == SINGLE:
                derived.content[key] = values[0]
            else:
                derived.content[key] = list(values)

    def _derive_update(self, properties: dict, derived: DerivedContent) -> None:
        derived.update = {operation: {} for operation in UPDATE_OPERATIONS}
        for operation in UPDATE_OPERATIONS:
            changes = properties.get(operation)
            if not changes:
                continue

            # Whole properties can be removed by name: {"delete": ["category"]}
            if operation == "delete" and is_list(changes):
                if not all(isinstance(name, str) for name in changes):
                    raise MicropubError(
                        INVALID_REQUEST,
                        operation,
                        "Invalid syntax for update action.",
                    )
                derived.update[operation] = list(changes)
                continue

            if not isinstance(changes, dict):
                raise MicropubError(
                    INVALID_REQUEST,
                    operation,
                    "Invalid syntax for update action.",
                )

            for name, values in changes.items():
                if not is_list(values):
                    raise MicropubError(
                        INVALID_REQUEST,
                        f"{operation}.{name}",
                        "All values in update actions must be arrays.",
                    )
                if len(values) == 1 and isinstance(values[0], dict) and "html" in values[0]:
                    derived.update[operation][name] = values[0]["html"]
                    derived.mark_html(name)
                else:
                    derived.update[operation][name] = values


class MicropubRequest:
    """The normalized form of a Micropub request.

    Authentication runs first; properties are only parsed for an
    authenticated request, and content is only derived from properties that
    parsed cleanly. The first error encountered is kept in ``error`` and
    later stages yield empty results.
    """

    def __init__(
        self,
        request,
        *,
        config: MicropubSettings | None = None,
        auth_verifier: AuthVerifier | None = None,
        normalizer: PropertyNormalizer | None = None,
        resolver: AttachmentResolver | None = None,
    ):
        self.request = request
        self.config = config or MicropubSettings.from_settings(request)
        self.auth_verifier = auth_verifier or AuthVerifier.from_settings(self.config)
        self.normalizer = normalizer or PropertyNormalizer()
        self.resolver = resolver or AttachmentResolver.from_settings(self.config)
        self._error = None

        self.auth
        self.content_fields

    def __repr__(self):
        return f"<MicropubRequest {self.method} action={self.action!r} error={self._error!r}>"

    def _record_error(self, error: MicropubError) -> None:
        if self._error is None:
            self._error = error
        else:
            logger.debug(
                "Dropping subsequent Micropub error",
                extra={"micropub_error": error.error, "micropub_property": error.property},
            )

    @property
    def error(self) -> MicropubError | None:
        return self._error

    @property
    def method(self) -> str:
        return (self.request.method or "GET").upper()

    def is_method(self, method: str) -> bool:
        return self.method == method.upper()

    @property
    def query(self):
        return self.request.GET

    @property
    def q(self) -> str | None:
        return self.request.GET.get("q")

    @cached_property
    def auth(self) -> AuthResult | None:
        try:
            return self.auth_verifier.verify(bearer_token(self.request))
        except MicropubError as exc:
            self._record_error(exc)
            return None

    @property
    def client(self) -> str | None:
        if self.auth is None:
            return None
        return self.auth.client_id

    @cached_property
    def _normalized(self) -> NormalizedProperties:
        if self.auth is None or self.is_method("GET"):
            return NormalizedProperties()
        try:
            return self.normalizer.normalize(
                raw_body(self.request),
                is_form_content_type(self.request.content_type),
            )
        except MicropubError as exc:
            logger.info(
                "Micropub request could not be normalized",
                extra={"micropub_error": exc.error, "micropub_property": exc.property},
            )
            self._record_error(exc)
            return NormalizedProperties()

    @property
    def properties(self) -> dict:
        return self._normalized.properties

    @property
    def action(self) -> str:
        return self._normalized.action or "create"

    @property
    def type(self) -> str | None:
        return self._normalized.type

    @property
    def url(self) -> str | None:
        if self.action == "create":
            return None
        return self._normalized.url

    @cached_property
    def _derived(self) -> DerivedContent:
        normalized = self._normalized
        if self._error is not None or self.auth is None:
            return DerivedContent()
        derived = ContentDeriver(self.resolver).derive(normalized.properties, self.action)
        if derived.error is not None:
            self._record_error(derived.error)
        return derived

    @property
    def content_fields(self) -> dict:
        return self._derived.content

    @property
    def commands(self) -> dict:
        return self._derived.commands

    @property
    def status(self) -> str | None:
        return self._derived.status

    @property
    def html_fields(self) -> list:
        return self._derived.html

    @property
    def update_ops(self) -> dict | None:
        if self.action != "update":
            return None
        return self._derived.update

    @property
    def attachments(self) -> dict[str, list[AttachmentDescriptor]]:
        return self._derived.attachments

    @cached_property
    def files(self) -> dict[str, list[AttachmentDescriptor]]:
        if self.auth is None:
            return {}
        files = uploaded_files(self.request.FILES)
        for kind, attachments in self.attachments.items():
            files.setdefault(kind, []).extend(attachments)
        return files

    def markdown_fields(self) -> dict:
        """``content_fields`` with HTML values rendered as Markdown."""
        fields = dict(self.content_fields)
        for key in self.html_fields:
            if isinstance(fields.get(key), str):
                fields[key] = html_to_markdown(fields[key]).strip()
        return fields

    def to_mf2(self) -> dict:
        # Updates and deletes carry no vocabulary.
        return {
            "type": f"h-{self.type}" if self.type else None,
            "properties": self.properties,
        }

    def as_dict(self) -> dict:
        return {
            "action": self.action,
            "auth": self.auth.to_dict() if self.auth else None,
            "body": self.content_fields,
            "client": self.client,
            "commands": self.commands,
            "files": {
                kind: [item.to_dict() for item in items] for kind, items in self.files.items()
            },
            "html": self.html_fields,
            "method": self.method,
            "properties": self.properties,
            "q": self.q,
            "query": {key: self.query.getlist(key) for key in self.query.keys()},
            "status": self.status,
            "type": self.type,
            "update": self.update_ops,
            "url": self.url,
            "error": self._error.to_dict() if self._error else None,
        }
