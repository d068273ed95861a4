# -*- coding: utf-8 -*-

from __future__ import annotations

import unittest
from unittest import mock

from fastapi.testclient import TestClient

import support

from nutriscope.analysis.errors import QuotaExceededError
from nutriscope.analysis.gateway import GatewayResponse
from nutriscope.records.storage import create_food_entry

USER = "user-1"
HEADERS = {"x-user-id": USER}


class TestAnalysisApi(support.IsolatedDataTestCase):
    def setUp(self) -> None:
        super().setUp()
        from nutriscope.api import app  # noqa: WPS433 (import after settings are pointed at scratch dirs)

        self.client = TestClient(app)
        self.addCleanup(self.client.close)

    def _eat(self) -> None:
        create_food_entry(
            USER,
            eaten_at="2026-03-01T12:00:00Z",
            meal_type="dinner",
            items=[{"name": "pasta", "calories": 800, "protein": 30}],
            data_root=self.data_root,
        )

    def _run(self, confidence: int = 60) -> dict:
        self._eat()
        reply = GatewayResponse(text=support.result_json(confidence), model_id="openai/gpt-4o-mini")
        with mock.patch("nutriscope.analysis.service.invoke", return_value=reply):
            resp = self.client.post(
                "/api/analysis/run",
                json={"analysis_kind": "nutrition", "start": "2026-03-01", "end": "2026-03-01"},
                headers=HEADERS,
            )
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()

    def test_identity_required(self) -> None:
        self.assertEqual(self.client.get("/api/analysis/models").status_code, 401)
        self.assertEqual(self.client.get("/api/analysis/models", headers={"x-user-id": "../etc"}).status_code, 401)

    def test_models(self) -> None:
        resp = self.client.get("/api/analysis/models", headers=HEADERS)
        self.assertEqual(resp.status_code, 200)
        values = [m["value"] for m in resp.json()]
        self.assertIn("openai/gpt-4o-mini", values)
        self.assertIn("qwen/qwen-plus", values)

    def test_run_without_data_is_404(self) -> None:
        with mock.patch("nutriscope.analysis.service.invoke") as invoke:
            resp = self.client.post("/api/analysis/run", json={"analysis_kind": "nutrition", "days": 7}, headers=HEADERS)
        self.assertEqual(resp.status_code, 404)
        self.assertIn("No food logs found", resp.json()["detail"])
        invoke.assert_not_called()

    def test_run_get_list_delete(self) -> None:
        body = self._run(60)
        self.assertEqual(body["result"]["confidence"], 0.6)
        self.assertEqual(len(body["result"]["insights"]), 5)
        self.assertFalse(body["fallback"])
        analysis_id = body["id"]

        got = self.client.get(f"/api/analysis/{analysis_id}", headers=HEADERS)
        self.assertEqual(got.status_code, 200)
        self.assertEqual(got.json()["input_bundle"]["derived_totals"]["calories"], 800)

        other = self.client.get(f"/api/analysis/{analysis_id}", headers={"x-user-id": "someone-else"})
        self.assertEqual(other.status_code, 404)

        listing = self.client.get("/api/analysis/", headers=HEADERS).json()
        self.assertEqual(listing["count"], 1)
        self.assertEqual(listing["items"][0]["id"], analysis_id)
        self.assertEqual(listing["items"][0]["model_id"], "openai/gpt-4o-mini")

        self.assertEqual(self.client.delete(f"/api/analysis/{analysis_id}", headers=HEADERS).status_code, 200)
        self.assertEqual(self.client.get(f"/api/analysis/{analysis_id}", headers=HEADERS).status_code, 404)
        self.assertEqual(self.client.delete(f"/api/analysis/{analysis_id}", headers=HEADERS).status_code, 404)

    def test_backend_failure_still_returns_a_result(self) -> None:
        self._eat()
        with mock.patch("nutriscope.analysis.service.invoke", side_effect=QuotaExceededError("quota")):
            resp = self.client.post(
                "/api/analysis/run",
                json={"analysis_kind": "nutrition", "backend": "openai/gpt-4o"},
                headers=HEADERS,
            )
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["fallback"])
        self.assertEqual(resp.json()["result"]["confidence"], 0.1)
        self.assertEqual(resp.json()["result"]["model_id"], "openai/gpt-4o")

    def test_second_opinion(self) -> None:
        analysis_id = self._run()["id"]
        replies = [
            GatewayResponse(text=support.result_json(70), model_id="qwen/qwen-plus"),
            GatewayResponse(text="Both analyses agree.", model_id="qwen/qwen-plus"),
        ]
        with mock.patch("nutriscope.analysis.second_opinion.invoke", side_effect=replies):
            resp = self.client.post(
                f"/api/analysis/{analysis_id}/second-opinion",
                json={"backend": "qwen/qwen-plus"},
                headers=HEADERS,
            )
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["text"], "Both analyses agree.")
        self.assertEqual(resp.json()["model_id"], "qwen/qwen-plus")

        stored = self.client.get(f"/api/analysis/{analysis_id}", headers=HEADERS).json()
        self.assertEqual([o["model_id"] for o in stored["second_opinions"]], ["qwen/qwen-plus"])

    def test_second_opinion_errors_are_visible(self) -> None:
        analysis_id = self._run()["id"]
        with mock.patch(
            "nutriscope.analysis.second_opinion.invoke",
            side_effect=QuotaExceededError("quota exceeded", model_id="qwen/qwen-plus"),
        ):
            quota = self.client.post(f"/api/analysis/{analysis_id}/second-opinion", json={}, headers=HEADERS)
        self.assertEqual(quota.status_code, 429)

        unknown = self.client.post(
            f"/api/analysis/{analysis_id}/second-opinion",
            json={"backend": "acme/model-x"},
            headers=HEADERS,
        )
        self.assertEqual(unknown.status_code, 503)

        missing = self.client.post("/api/analysis/nope/second-opinion", json={}, headers=HEADERS)
        self.assertEqual(missing.status_code, 404)

    def test_validation_of_request_body(self) -> None:
        resp = self.client.post("/api/analysis/run", json={"analysis_kind": "horoscope"}, headers=HEADERS)
        self.assertEqual(resp.status_code, 422)
        resp = self.client.post("/api/analysis/run", json={"analysis_kind": "nutrition", "days": 0}, headers=HEADERS)
        self.assertEqual(resp.status_code, 422)


if __name__ == "__main__":
    unittest.main()
