# -*- coding: utf-8 -*-

from __future__ import annotations

import json
import unittest
from typing import Callable, List
from unittest import mock

import httpx

import support

from nutriscope.analysis.backends import is_placeholder_key, list_backends, mask_key, resolve_backend
from nutriscope.analysis.errors import (
    AuthenticationError,
    ConfigurationError,
    QuotaExceededError,
    TransportError,
)
from nutriscope.analysis.gateway import invoke
from nutriscope.analysis.models import AnalysisKind, InputBundle
from nutriscope.analysis.prompts import compose
from nutriscope.config import settings


def _request(choice: str):
    bundle = InputBundle(
        analysis_kind=AnalysisKind.item_lookup,
        windowed_records=[{"record_type": "query", "id": "1", "date": None, "query": "banana"}],
        derived_totals={"query_count": 1.0},
    )
    return compose(bundle, resolve_backend(choice))


class _Recorder:
    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


class TestBackendSelection(unittest.TestCase):
    def test_resolve(self) -> None:
        backend = resolve_backend("qwen/qwen-plus")
        self.assertEqual((backend.provider, backend.model, backend.family), ("qwen", "qwen-plus", "chat_completions"))
        nested = resolve_backend("opencode/anthropic/claude-sonnet")
        self.assertEqual(nested.provider, "opencode")
        self.assertEqual(nested.model, "anthropic/claude-sonnet")
        self.assertEqual(nested.model_id, "opencode/anthropic/claude-sonnet")

    def test_unknown_provider(self) -> None:
        with self.assertRaises(ConfigurationError):
            resolve_backend("acme/model-x")

    def test_masking_and_placeholders(self) -> None:
        self.assertEqual(mask_key("sk-proj-abcdefghijklmnop1234"), "sk-proj...1234")
        self.assertEqual(mask_key("short"), "***")
        self.assertTrue(is_placeholder_key("your-openai-api-key-here"))
        self.assertTrue(is_placeholder_key("  "))
        self.assertFalse(is_placeholder_key("sk-real"))


class TestChatCompletions(support.IsolatedDataTestCase):
    def test_success(self) -> None:
        rec = _Recorder(lambda r: httpx.Response(200, json={"choices": [{"message": {"content": "hello"}}]}))
        with rec.client() as client:
            response = invoke(_request("openai/gpt-4o-mini"), client=client)
        self.assertEqual(response.text, "hello")
        self.assertEqual(response.model_id, "openai/gpt-4o-mini")
        sent = rec.requests[0]
        self.assertEqual(str(sent.url), "https://api.openai.test/v1/chat/completions")
        self.assertEqual(sent.headers["authorization"], f"Bearer {support.OPENAI_TEST_KEY}")
        body = json.loads(sent.content)
        self.assertEqual(body["model"], "gpt-4o-mini")
        self.assertEqual(body["max_tokens"], 1500)
        self.assertEqual([m["role"] for m in body["messages"]], ["system", "user"])

    def test_qwen_uses_its_own_endpoint(self) -> None:
        rec = _Recorder(lambda r: httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]}))
        with rec.client() as client:
            invoke(_request("qwen/qwen-plus"), client=client)
        self.assertTrue(str(rec.requests[0].url).startswith("https://dashscope.test/"))
        self.assertEqual(rec.requests[0].headers["authorization"], f"Bearer {support.QWEN_TEST_KEY}")

    def test_error_classification(self) -> None:
        cases = [
            (401, {"error": {"message": "Incorrect API key", "code": "invalid_api_key"}}, AuthenticationError),
            (429, {"error": {"message": "You exceeded your current quota", "code": "insufficient_quota"}}, QuotaExceededError),
            (429, {"error": {"message": "Rate limit reached", "code": "rate_limit_exceeded"}}, TransportError),
            (403, {"error": {"message": "Free tier exhausted", "code": "AllocationQuota.FreeTierOnly"}}, QuotaExceededError),
            (404, {"error": {"message": "The model does not exist", "code": "model_not_found"}}, TransportError),
            (500, {"error": {"message": "boom"}}, TransportError),
        ]
        for status, body, expected in cases:
            with self.subTest(status=status, body=body):
                rec = _Recorder(lambda r, s=status, b=body: httpx.Response(s, json=b))
                with rec.client() as client:
                    with self.assertRaises(expected) as ctx:
                        invoke(_request("openai/gpt-4o-mini"), client=client)
                self.assertEqual(ctx.exception.model_id, "openai/gpt-4o-mini")

    def test_html_and_empty_responses(self) -> None:
        responses = [
            httpx.Response(200, text="<html>gateway</html>", headers={"content-type": "text/html"}),
            httpx.Response(200, text=""),
            httpx.Response(200, text="not json at all"),
            httpx.Response(200, json={"choices": [{"message": {"content": "   "}}]}),
            httpx.Response(200, json={"choices": []}),
        ]
        for resp in responses:
            with self.subTest(body=resp.text[:30]):
                rec = _Recorder(lambda r, x=resp: x)
                with rec.client() as client:
                    with self.assertRaises(TransportError):
                        invoke(_request("openai/gpt-4o-mini"), client=client)

    def test_network_failure(self) -> None:
        def boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with httpx.Client(transport=httpx.MockTransport(boom)) as client:
            with self.assertRaises(TransportError):
                invoke(_request("openai/gpt-4o-mini"), client=client)

    def test_timeout(self) -> None:
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with httpx.Client(transport=httpx.MockTransport(slow)) as client:
            with self.assertRaises(TransportError):
                invoke(_request("openai/gpt-4o-mini"), client=client)

    def test_malformed_base_url_is_a_transport_error(self) -> None:
        rec = _Recorder(lambda r: httpx.Response(200, json={}))
        with mock.patch.object(settings, "openai_base_url", "https://api.openai.test:notaport/v1"):
            with rec.client() as client:
                with self.assertRaises(TransportError) as ctx:
                    invoke(_request("openai/gpt-4o-mini"), client=client)
        self.assertEqual(ctx.exception.model_id, "openai/gpt-4o-mini")
        self.assertEqual(rec.requests, [])

    def test_missing_key_fails_before_any_request(self) -> None:
        for key in (None, "", "your-openai-api-key-here"):
            with self.subTest(key=key), mock.patch.object(settings, "openai_api_key", key):
                rec = _Recorder(lambda r: httpx.Response(200, json={}))
                with rec.client() as client:
                    with self.assertRaises(ConfigurationError) as ctx:
                        invoke(_request("openai/gpt-4o-mini"), client=client)
                self.assertIn("OPENAI_API_KEY", str(ctx.exception))
                self.assertEqual(rec.requests, [])

    def test_list_backends(self) -> None:
        options = list_backends()
        values = [o["value"] for o in options]
        self.assertEqual(values, ["openai/gpt-4o-mini", "openai/gpt-4o", "qwen/qwen-plus"])
        self.assertTrue(options[0]["default"])
        self.assertFalse(options[1]["default"])


class TestOpenCode(support.IsolatedDataTestCase):
    def _server(self, message_body: dict, status: int = 200) -> _Recorder:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/session":
                return httpx.Response(200, json={"id": "ses_1"})
            if request.url.path == "/session/ses_1/message":
                return httpx.Response(status, json=message_body)
            return httpx.Response(404, json={"error": "not found"})

        return _Recorder(handler)

    def test_text_parts_are_concatenated(self) -> None:
        rec = self._server({"info": {}, "parts": [{"type": "text", "text": "{\"a\": "}, {"type": "tool"}, {"type": "text", "text": "1}"}]})
        with rec.client() as client:
            response = invoke(_request("opencode/qwen/qwen-plus"), client=client)
        self.assertEqual(response.text, "{\"a\": 1}")
        payload = json.loads(rec.requests[1].content)
        self.assertEqual(payload["model"], {"providerID": "qwen", "modelID": "qwen-plus"})
        self.assertEqual(payload["parts"][0]["type"], "text")
        self.assertIn("banana", payload["parts"][0]["text"])

    def test_embedded_quota_error(self) -> None:
        rec = self._server(
            {
                "info": {
                    "error": {
                        "name": "APIError",
                        "data": {
                            "statusCode": 403,
                            "message": "Provider returned error",
                            "responseBody": '{"error":{"message":"Free tier exhausted","code":"AllocationQuota.FreeTierOnly"}}',
                        },
                    }
                },
                "parts": [],
            }
        )
        with rec.client() as client:
            with self.assertRaises(QuotaExceededError) as ctx:
                invoke(_request("opencode/qwen/qwen-plus"), client=client)
        self.assertIn("Free tier exhausted", str(ctx.exception))

    def test_embedded_auth_error(self) -> None:
        rec = self._server({"info": {"error": {"name": "ProviderAuthError", "data": {"message": "no key"}}}, "parts": []})
        with rec.client() as client:
            with self.assertRaises(AuthenticationError):
                invoke(_request("opencode/openai/gpt-4o"), client=client)

    def test_missing_session_id(self) -> None:
        rec = _Recorder(lambda r: httpx.Response(200, json={"title": "x"}))
        with rec.client() as client:
            with self.assertRaises(TransportError):
                invoke(_request("opencode/openai/gpt-4o"), client=client)


if __name__ == "__main__":
    unittest.main()
