import json

from django.http import HttpResponse, JsonResponse

UNAUTHORIZED = "unauthorized"
FORBIDDEN = "forbidden"
INSUFFICIENT_SCOPE = "insufficient_scope"
INVALID_REQUEST = "invalid_request"
INTERNAL_ERROR = "internal_error"

STATUS_CODES = {
    UNAUTHORIZED: 401,
    FORBIDDEN: 403,
    INSUFFICIENT_SCOPE: 401,
    INVALID_REQUEST: 400,
    INTERNAL_ERROR: 500,
}


def _accepts_json(request) -> bool:
    # JSON wins whenever it is listed, q-values are not weighed.
    accept = request.headers.get("Accept", "") if request is not None else ""
    return "application/json" in accept.lower()


class MicropubError(Exception):
    """A Micropub protocol error.

    ``error`` is the protocol error kind, ``property`` names the offending
    field (or token) and ``description`` is shown to the client. The HTTP
    status is derived from the kind; unknown kinds map to 500.
    """

    def __init__(self, error: str, property=None, description: str | None = None):
        super().__init__(description or error)
        self.error = error
        self.property = property
        self.description = description

    @property
    def status_code(self) -> int:
        return STATUS_CODES.get(self.error, 500)

    def __repr__(self):
        return f"MicropubError({self.error!r}, {self.property!r}, {self.description!r})"

    def __str__(self):
        return json.dumps(self.to_dict())

    def __eq__(self, other):
        if not isinstance(other, MicropubError):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash((self.error, str(self.property), self.description))

    def to_dict(self) -> dict:
        return {
            "error": self.error,
            "error_property": self.property,
            "error_description": self.description,
        }

    def to_response(self, request) -> HttpResponse:
        if _accepts_json(request):
            return JsonResponse(
                {"error": self.error, "error_description": self.description},
                status=self.status_code,
            )
        return HttpResponse(
            f"Error '{self.error}': {self.description}",
            content_type="text/plain; charset=utf-8",
            status=self.status_code,
        )


def error_response(request, error: str, property=None, description: str | None = None) -> HttpResponse:
    return MicropubError(error, property, description).to_response(request)
