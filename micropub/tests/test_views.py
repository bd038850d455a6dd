import json
from urllib.parse import urlencode

from django.test import SimpleTestCase, override_settings

from .helpers import BASE_URL

INSPECT_URL = "/micropub/inspect"


@override_settings(
    MICROPUB_BASE_URL=BASE_URL,
    MICROPUB_TOKEN_VERIFIER="micropub.tests.helpers.fake_verifier",
)
class MicropubInspectViewTests(SimpleTestCase):
    def test_missing_token_returns_json_error(self):
        with self.assertLogs("micropub.request_logs", level="WARNING") as logs:
            response = self.client.post(
                INSPECT_URL,
                data={"h": "entry", "content": "hi"},
                HTTP_ACCEPT="application/json",
            )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(
            response.json(),
            {"error": "unauthorized", "error_description": "No access token provided."},
        )
        self.assertIn("unauthorized", logs.output[0])

    def test_invalid_request_returns_plain_text(self):
        with self.assertLogs("micropub.request_logs", level="WARNING"):
            response = self.client.post(
                INSPECT_URL,
                data=json.dumps({"type": "h-entry", "properties": {}}),
                content_type="application/json",
                HTTP_AUTHORIZATION="Bearer 123456",
            )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.content.decode(),
            "Error 'invalid_request': Property 'type' must be an array of Microformat vocabularies.",
        )

    def test_logged_body_redacts_token(self):
        with self.assertLogs("micropub.request_logs", level="WARNING") as logs:
            self.client.post(
                INSPECT_URL,
                data=urlencode({"content": "hi", "access_token": "super-secret-token-value"}),
                content_type="application/x-www-form-urlencoded",
            )
        record = logs.records[0]
        self.assertNotIn("super-secret-token-value", record.micropub_request_body)
        self.assertIn("super-...alue", record.micropub_request_body)

    def test_create_is_echoed(self):
        response = self.client.post(
            INSPECT_URL,
            data={"h": "entry", "content": "Hello World", "category[]": ["foo", "bar"], "slug": "hello"},
            HTTP_AUTHORIZATION="Bearer 123456",
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["action"], "create")
        self.assertEqual(payload["type"], "entry")
        self.assertEqual(payload["body"], {"content": "Hello World", "category": ["foo", "bar"]})
        self.assertEqual(payload["commands"], {"mp-slug": "hello"})
        self.assertEqual(payload["client"], "https://micropub.rocks/")

    def test_get_is_echoed(self):
        response = self.client.get(INSPECT_URL, {"q": "config"}, HTTP_AUTHORIZATION="Bearer 123456")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["q"], "config")
        self.assertEqual(payload["properties"], {})
