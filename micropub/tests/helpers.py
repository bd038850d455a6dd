import json
from unittest.mock import MagicMock
from urllib.parse import urlencode

from django.test import RequestFactory

BASE_URL = "https://example.com"
MICROPUB_PATH = "/micropub"

factory = RequestFactory()


def token_descriptor(**overrides):
    descriptor = {
        "me": BASE_URL,
        "iss": "https://tokens.example.net/",
        "client_id": "https://micropub.rocks/",
        "iat": 1700000000,
        "scope": "create update media",
    }
    descriptor.update(overrides)
    return descriptor


def fake_verifier(token):
    return token_descriptor()


def counting_verifier(**overrides):
    calls = []

    def verify(token):
        calls.append(token)
        return token_descriptor(**overrides)

    return verify, calls


def json_request(payload, token="123456", method="post", **extra):
    if token:
        extra.setdefault("HTTP_AUTHORIZATION", f"Bearer {token}")
    return getattr(factory, method)(
        MICROPUB_PATH,
        data=json.dumps(payload),
        content_type="application/json",
        **extra,
    )


def form_request(data, token="123456", **extra):
    if token:
        extra.setdefault("HTTP_AUTHORIZATION", f"Bearer {token}")
    return factory.post(
        MICROPUB_PATH,
        data=urlencode(data, doseq=True),
        content_type="application/x-www-form-urlencoded",
        **extra,
    )


def fake_response(body=b"", url="", content_type="application/octet-stream"):
    response = MagicMock()
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    response.read.return_value = body
    response.geturl.return_value = url
    response.headers = {"Content-Type": content_type}
    return response
