from django.test import SimpleTestCase

from micropub.errors import MicropubError
from micropub.properties import (
    PropertyNormalizer,
    is_form_content_type,
    is_list,
    is_valid_url,
    raw_body,
)

from .helpers import factory, form_request, json_request


class RawBodyTests(SimpleTestCase):
    def test_form_brackets_become_lists(self):
        request = form_request({"h": "entry", "content": "Hello World", "category[]": ["foo", "bar"]})
        self.assertEqual(
            raw_body(request),
            {"h": "entry", "content": "Hello World", "category": ["foo", "bar"]},
        )

    def test_repeated_form_keys_become_lists(self):
        request = form_request({"h": "entry", "category": ["foo", "bar"]})
        self.assertEqual(raw_body(request)["category"], ["foo", "bar"])

    def test_json_body(self):
        request = json_request({"type": ["h-entry"], "properties": {"content": ["hi"]}})
        self.assertEqual(raw_body(request), {"type": ["h-entry"], "properties": {"content": ["hi"]}})

    def test_invalid_json_is_empty(self):
        request = factory.post("/micropub", data="{not json", content_type="application/json")
        self.assertEqual(raw_body(request), {})

    def test_json_array_is_empty(self):
        request = factory.post("/micropub", data="[1, 2]", content_type="application/json")
        self.assertEqual(raw_body(request), {})


class HelperTests(SimpleTestCase):
    def test_is_list(self):
        self.assertTrue(is_list(["a"]))
        self.assertTrue(is_list(()))
        self.assertFalse(is_list("a"))
        self.assertFalse(is_list({"0": "a"}))

    def test_is_valid_url(self):
        self.assertTrue(is_valid_url("https://example.com/post/1"))
        self.assertFalse(is_valid_url("not a url"))
        self.assertFalse(is_valid_url(["https://example.com/post/1"]))
        self.assertFalse(is_valid_url(""))

    def test_form_content_types(self):
        self.assertTrue(is_form_content_type("application/x-www-form-urlencoded"))
        self.assertTrue(is_form_content_type("multipart/form-data; boundary=xyz"))
        self.assertFalse(is_form_content_type("application/json"))
        self.assertFalse(is_form_content_type(None))


class PropertyNormalizerTests(SimpleTestCase):
    def setUp(self):
        self.normalizer = PropertyNormalizer()

    def test_form_syntax(self):
        result = self.normalizer.normalize(
            {"h": "entry", "content": "Hello World", "category": ["foo", "bar"], "access_token": "123"},
            True,
        )
        self.assertEqual(result.action, "create")
        self.assertEqual(result.type, "entry")
        self.assertEqual(result.properties, {"content": ["Hello World"], "category": ["foo", "bar"]})

    def test_form_syntax_needs_form_content_type(self):
        with self.assertRaises(MicropubError) as ctx:
            self.normalizer.normalize({"h": "entry", "content": "Hello"}, False)
        self.assertEqual(ctx.exception.error, "invalid_request")
        self.assertEqual(ctx.exception.property, "properties")

    def test_json_syntax(self):
        result = self.normalizer.normalize(
            {"type": ["h-entry"], "properties": {"content": ["Hello World"], "category": ["foo", "bar"]}},
            False,
        )
        self.assertEqual(result.type, "entry")
        self.assertEqual(result.properties, {"content": ["Hello World"], "category": ["foo", "bar"]})
        self.assertIsNone(result.url)

    def test_type_must_be_list(self):
        with self.assertRaises(MicropubError) as ctx:
            self.normalizer.normalize({"type": "h-entry", "properties": {"content": ["x"]}}, False)
        self.assertEqual(ctx.exception.error, "invalid_request")
        self.assertEqual(ctx.exception.property, "type")

    def test_properties_required(self):
        with self.assertRaises(MicropubError) as ctx:
            self.normalizer.normalize({"type": ["h-entry"]}, False)
        self.assertEqual(ctx.exception.property, "properties")

    def test_properties_must_be_mapping(self):
        with self.assertRaises(MicropubError) as ctx:
            self.normalizer.normalize({"type": ["h-entry"], "properties": ["content"]}, False)
        self.assertEqual(ctx.exception.property, "properties")

    def test_legacy_names(self):
        result = self.normalizer.normalize(
            {
                "type": ["h-entry"],
                "properties": {
                    "content": ["hi"],
                    "slug": ["my-slug"],
                    "syndicate-to": ["https://social.example/"],
                },
            },
            False,
        )
        self.assertEqual(result.properties["mp-slug"], ["my-slug"])
        self.assertEqual(result.properties["mp-syndicate-to"], ["https://social.example/"])
        self.assertNotIn("slug", result.properties)
        self.assertNotIn("syndicate-to", result.properties)

    def test_action_syntax(self):
        body = {
            "action": "update",
            "url": "https://example.com/post/1",
            "replace": {"content": ["Changed my mind."]},
        }
        result = self.normalizer.normalize(body, False)
        self.assertEqual(result.action, "update")
        self.assertEqual(result.url, "https://example.com/post/1")
        self.assertEqual(result.properties["replace"], {"content": ["Changed my mind."]})
        self.assertEqual(result.properties["action"], "update")

    def test_form_action_syntax(self):
        result = self.normalizer.normalize({"action": "delete", "url": "https://example.com/post/1"}, True)
        self.assertEqual(result.action, "delete")
        self.assertEqual(result.url, "https://example.com/post/1")

    def test_action_requires_valid_url(self):
        for url in (None, "", "post/1", ["https://example.com/post/1"]):
            body = {"action": "delete"}
            if url is not None:
                body["url"] = url
            with self.subTest(url=url):
                with self.assertRaises(MicropubError) as ctx:
                    self.normalizer.normalize(body, False)
                self.assertEqual(ctx.exception.property, "url")

    def test_unparseable_body(self):
        with self.assertRaises(MicropubError) as ctx:
            self.normalizer.normalize({"content": ["hello"]}, False)
        self.assertEqual(ctx.exception.error, "invalid_request")
        self.assertEqual(ctx.exception.property, "properties")
        self.assertIn("could not be parsed", ctx.exception.description)
