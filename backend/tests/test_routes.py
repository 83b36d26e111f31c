"""
Grafotest API — Endpoint Tests
===============================

What:  HTTP-level tests through the real app, middleware and exception handlers.
How:   HTTPX AsyncClient over ASGITransport; AnalysisService uses mock_llm.

What we test:
    ✅ 200 with the model's JSON unchanged
    ✅ 400 validation envelope
    ✅ 500 with each operation's fallback, never the upstream error text
    ✅ Health check, 404 envelope, request ID and CORS headers
    ✅ Access log records the operation and how it ended
"""

import json
import logging

import pytest

from grafotest.exceptions import LLMServiceError


class TestAnalyzeEndpoint:

    @pytest.mark.asyncio
    async def test_success(self, test_client, mock_llm, sample_report, sample_image_base64):
        mock_llm.generate.return_value = ["Here you go:\n" + json.dumps(sample_report)]

        response = await test_client.post(
            "/analyze", json={"imageBase64": sample_image_base64, "language": "en"}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert response.json() == sample_report

    @pytest.mark.asyncio
    async def test_missing_image(self, test_client, mock_llm):
        response = await test_client.post("/analyze", json={"language": "id"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["message"] == "Image is required"
        mock_llm.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_body(self, test_client):
        response = await test_client.post(
            "/analyze",
            content="not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        assert response.json()["message"] == "Request body must be a JSON object"

    @pytest.mark.asyncio
    async def test_array_body(self, test_client):
        response = await test_client.post("/analyze", json=[1, 2])

        assert response.status_code == 400
        assert response.json()["message"] == "Request body must be a JSON object"

    @pytest.mark.asyncio
    async def test_wrongly_typed_field(self, test_client, mock_llm):
        response = await test_client.post("/analyze", json={"imageBase64": 123})

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Invalid request body"
        assert body["details"] == {"fields": ["imageBase64"]}
        mock_llm.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_null_language_means_indonesian(self, test_client, mock_llm, sample_report, sample_image_base64):
        mock_llm.generate.return_value = [json.dumps(sample_report)]

        response = await test_client.post(
            "/analyze", json={"imageBase64": sample_image_base64, "language": None}
        )

        assert response.status_code == 200
        prompt = mock_llm.generate.await_args.args[0]
        assert "Gunakan Bahasa Indonesia." in prompt

    @pytest.mark.asyncio
    async def test_upstream_failure(self, test_client, mock_llm, sample_image_base64):
        mock_llm.generate.side_effect = LLMServiceError(
            message="Gemini HTTP error",
            context={"upstream": "403 API key invalid"},
        )

        response = await test_client.post("/analyze", json={"imageBase64": sample_image_base64})

        assert response.status_code == 500
        assert response.json() == {"error": "AI analysis failed"}
        assert "API key invalid" not in response.text

    @pytest.mark.asyncio
    async def test_unparseable_answer(self, test_client, mock_llm, sample_image_base64):
        mock_llm.generate.return_value = ["I cannot analyze this image."]

        response = await test_client.post("/analyze", json={"imageBase64": sample_image_base64})

        assert response.status_code == 500
        assert response.json() == {"error": "AI analysis failed"}


class TestContextualEndpoint:

    @pytest.mark.asyncio
    async def test_success_from_fragments(self, test_client, mock_llm, sample_assessment, sample_image_base64):
        mock_llm.generate.return_value = [
            '{"suitabilityScore": 72, ',
            '"relevanceExplanation": "ok", "actionableAdvice": ["a","b"], "specificRisks": ["r"]}',
        ]

        response = await test_client.post(
            "/analyze-contextual",
            json={"imageBase64": sample_image_base64, "context": "Manajer proyek"},
        )

        assert response.status_code == 200
        assert response.json() == sample_assessment

    @pytest.mark.asyncio
    async def test_missing_context(self, test_client, sample_image_base64):
        response = await test_client.post(
            "/analyze-contextual", json={"imageBase64": sample_image_base64}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "imageBase64 dan context wajib diisi"

    @pytest.mark.asyncio
    async def test_upstream_failure_english(self, test_client, mock_llm, sample_image_base64):
        mock_llm.generate.side_effect = RuntimeError("connection reset by peer")

        response = await test_client.post(
            "/analyze-contextual",
            json={"imageBase64": sample_image_base64, "context": "Guru", "language": "en"},
        )

        assert response.status_code == 500
        assert response.json() == {
            "suitabilityScore": 0,
            "relevanceExplanation": "Contextual analysis failed.",
            "actionableAdvice": [],
            "specificRisks": [],
        }
        assert "connection reset" not in response.text

    @pytest.mark.asyncio
    async def test_nan_score_returns_fallback(self, test_client, mock_llm, sample_image_base64):
        mock_llm.generate.return_value = [
            '{"suitabilityScore": NaN, "relevanceExplanation": "x", '
            '"actionableAdvice": [], "specificRisks": []}'
        ]

        response = await test_client.post(
            "/analyze-contextual",
            json={"imageBase64": sample_image_base64, "context": "Guru"},
        )

        assert response.status_code == 500
        assert response.json() == {
            "suitabilityScore": 0,
            "relevanceExplanation": "Terjadi kegagalan analisis kontekstual.",
            "actionableAdvice": [],
            "specificRisks": [],
        }

    @pytest.mark.asyncio
    async def test_empty_answer(self, test_client, mock_llm, sample_image_base64):
        mock_llm.generate.return_value = []

        response = await test_client.post(
            "/analyze-contextual",
            json={"imageBase64": sample_image_base64, "context": "Guru"},
        )

        assert response.status_code == 500
        assert response.json()["relevanceExplanation"] == "Terjadi kegagalan analisis kontekstual."


class TestPlumbing:

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["service"] == "grafotest-api"
        assert body["status"] in {"ok", "degraded"}
        assert "uptime_seconds" in body

    @pytest.mark.asyncio
    async def test_unknown_path(self, test_client):
        response = await test_client.get("/nope")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, test_client):
        response = await test_client.get("/health")

        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_cors_preflight(self, test_client):
        response = await test_client.options(
            "/analyze",
            headers={
                "Origin": "http://frontend.test",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "POST" in response.headers["access-control-allow-methods"]

    @pytest.mark.asyncio
    async def test_cors_header_on_fallback(self, test_client, mock_llm, sample_image_base64):
        mock_llm.generate.return_value = ["{broken"]

        response = await test_client.post(
            "/analyze",
            json={"imageBase64": sample_image_base64},
            headers={"Origin": "http://frontend.test"},
        )

        assert response.status_code == 500
        assert response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/analyze", "/analyze-contextual", "/anything"])
    async def test_bare_options_request(self, test_client, path):
        response = await test_client.options(path)

        assert response.status_code == 200
        assert "POST" in response.headers["access-control-allow-methods"]
        assert response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("client_id", ["has spaces", "x" * 65, "semi;colon"])
    async def test_unsafe_request_id_replaced(self, test_client, client_id):
        response = await test_client.get("/health", headers={"X-Request-ID": client_id})

        assert response.headers["X-Request-ID"] != client_id
        assert len(response.headers["X-Request-ID"]) == 8


class TestAccessLog:

    @staticmethod
    def access_records(caplog):
        return [r for r in caplog.records if r.name == "grafotest.access"]

    @pytest.mark.asyncio
    async def test_success_outcome(self, test_client, mock_llm, sample_report, sample_image_base64, caplog):
        caplog.set_level(logging.INFO, logger="grafotest.access")
        mock_llm.generate.return_value = [json.dumps(sample_report)]

        await test_client.post("/analyze", json={"imageBase64": sample_image_base64})

        [record] = self.access_records(caplog)
        assert record.levelno == logging.INFO
        assert record.operation == "analyze"
        assert record.outcome == "ok"
        assert "op=analyze outcome=ok" in record.getMessage()

    @pytest.mark.asyncio
    async def test_fallback_outcome_names_failure(self, test_client, mock_llm, sample_image_base64, caplog):
        caplog.set_level(logging.INFO, logger="grafotest.access")
        mock_llm.generate.return_value = ["{not valid json}"]

        await test_client.post(
            "/analyze-contextual",
            json={"imageBase64": sample_image_base64, "context": "Guru"},
        )

        [record] = self.access_records(caplog)
        assert record.levelno == logging.ERROR
        assert record.status == 500
        assert record.operation == "analyze-contextual"
        assert record.outcome == "fallback"
        assert record.failure == "parse-error"

    @pytest.mark.asyncio
    async def test_rejected_outcome(self, test_client, caplog):
        caplog.set_level(logging.INFO, logger="grafotest.access")

        await test_client.post("/analyze", json={})

        [record] = self.access_records(caplog)
        assert record.levelno == logging.WARNING
        assert record.outcome == "rejected"
        assert record.failure == "imageBase64"

    @pytest.mark.asyncio
    async def test_health_not_logged(self, test_client, caplog):
        caplog.set_level(logging.INFO, logger="grafotest.access")

        await test_client.get("/health")

        assert self.access_records(caplog) == []
