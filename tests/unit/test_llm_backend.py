"""tests for inference backends: http status classification, heuristic answers, factory"""

import asyncio
import json
import unittest

import httpx

from auditflow.agent.analyzers import QualityAnalyzer, SecurityAnalyzer
from auditflow.cal.preprocessor import ContractPreprocessor
from auditflow.config import PipelineConfig
from auditflow.models.findings import AnalysisRequest, ContractInfo
from auditflow.utils.llm_backend import (
    HeuristicBackend,
    HTTPInferenceBackend,
    InferenceError,
    create_backend,
)

from conftest import REENTRANT_VAULT


def _completion(content):
    return {
        "model": "test-model",
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 34},
    }


def _mock_backend(handler):
    return HTTPInferenceBackend(model="test-model", api_key="sk-test", transport=httpx.MockTransport(handler))


class TestHTTPBackend(unittest.TestCase):

    def test_request_fn_receives_chat_payload(self):
        seen = {}

        async def fake_request(payload):
            seen.update(payload)
            return _completion('  {"overallScore": 88}  ')

        async def run():
            backend = HTTPInferenceBackend(model="m", request_fn=fake_request, max_tokens=100)
            return await backend.agenerate("analyze", system_prompt="you audit", temperature=0.0)

        response = asyncio.run(run())
        self.assertEqual(response.text, '{"overallScore": 88}')
        self.assertEqual(response.prompt_tokens, 12)
        self.assertEqual(response.output_tokens, 34)
        self.assertEqual(seen["messages"][0], {"role": "system", "content": "you audit"})
        self.assertEqual(seen["max_tokens"], 100)
        self.assertEqual(seen["temperature"], 0.0)

    def test_posts_to_chat_completions_with_bearer_token(self):
        captured = []

        def handler(request):
            captured.append(request)
            return httpx.Response(200, json=_completion("ok"))

        async def run():
            backend = _mock_backend(handler)
            try:
                return await backend.agenerate("hello")
            finally:
                await backend.aclose()

        response = asyncio.run(run())
        self.assertEqual(response.text, "ok")
        self.assertEqual(captured[0].url.path, "/v1/chat/completions")
        self.assertEqual(captured[0].headers["Authorization"], "Bearer sk-test")
        self.assertEqual(json.loads(captured[0].content)["model"], "test-model")

    def _error_for(self, status):
        async def run():
            backend = _mock_backend(lambda request: httpx.Response(status, text="nope"))
            try:
                await backend.agenerate("hello")
            except InferenceError as e:
                return e
            finally:
                await backend.aclose()
            return None

        return asyncio.run(run())

    def test_rate_limit_and_server_errors_are_retryable(self):
        for status in (429, 500, 503):
            error = self._error_for(status)
            self.assertIsNotNone(error)
            self.assertTrue(error.retryable)
            self.assertEqual(error.status_code, status)

    def test_client_errors_are_not_retryable(self):
        for status in (400, 401, 404):
            error = self._error_for(status)
            self.assertIsNotNone(error)
            self.assertFalse(error.retryable)

    def test_transport_failure_is_retryable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def run():
            backend = _mock_backend(handler)
            try:
                with self.assertRaises(InferenceError) as ctx:
                    await backend.agenerate("hello")
                return ctx.exception
            finally:
                await backend.aclose()

        self.assertTrue(asyncio.run(run()).retryable)

    def test_malformed_payload_raises(self):
        async def fake_request(payload):
            return {"choices": []}

        async def run():
            backend = HTTPInferenceBackend(model="m", request_fn=fake_request)
            with self.assertRaises(InferenceError):
                await backend.agenerate("hello")

        asyncio.run(run())

    def test_availability(self):
        async def fake_request(payload):
            return _completion("")

        self.assertTrue(HTTPInferenceBackend(model="m", request_fn=fake_request).is_available())

        async def run():
            backend = HTTPInferenceBackend(model="m")
            try:
                return backend.is_available()
            finally:
                await backend.aclose()

        self.assertFalse(asyncio.run(run()))


class TestHeuristicBackend(unittest.TestCase):

    def setUp(self):
        self.contract = ContractPreprocessor().preprocess(AnalysisRequest(contract_code=REENTRANT_VAULT))

    def test_security_answer_follows_response_contract(self):
        response = asyncio.run(HeuristicBackend().agenerate("p", agent_id="security", contract=self.contract))
        payload = json.loads(response.text)
        self.assertEqual(payload["overallScore"], 80)
        self.assertEqual(payload["riskLevel"], "Low")
        self.assertEqual([v["category"] for v in payload["vulnerabilities"]], ["reentrancy"])

    def test_quality_answer_has_code_quality(self):
        response = asyncio.run(HeuristicBackend().agenerate("p", agent_id="quality", contract=self.contract))
        payload = json.loads(response.text)
        self.assertIn("codeQuality", payload)
        self.assertEqual(payload["overallScore"], payload["codeQuality"]["score"])

    def test_missing_source_is_not_retryable(self):
        contract = ContractInfo(name="Empty", source="")
        with self.assertRaises(InferenceError) as ctx:
            asyncio.run(HeuristicBackend().agenerate("p", agent_id="security", contract=contract))
        self.assertFalse(ctx.exception.retryable)

    def test_analyzers_parse_heuristic_answers(self):
        backend = HeuristicBackend()
        security = asyncio.run(SecurityAnalyzer(backend).analyze(self.contract))
        quality = asyncio.run(QualityAnalyzer(backend).analyze(self.contract))
        self.assertEqual(security.score, 80)
        self.assertEqual(security.findings[0].category, "reentrancy")
        self.assertEqual(security.findings[0].detected_by, ("security",))
        self.assertIsNotNone(quality.code_quality)


class TestFactory(unittest.TestCase):

    def test_heuristic_without_api_key(self):
        settings = PipelineConfig(LLM_API_KEY="")
        self.assertIsInstance(create_backend(settings=settings), HeuristicBackend)

    def test_http_with_api_key(self):
        settings = PipelineConfig(LLM_API_KEY="sk-test", LLM_MODEL="m1")

        async def run():
            backend = create_backend(settings=settings)
            try:
                return backend
            finally:
                await backend.aclose()

        backend = asyncio.run(run())
        self.assertIsInstance(backend, HTTPInferenceBackend)
        self.assertEqual(backend.model, "m1")

    def test_unknown_type(self):
        with self.assertRaises(ValueError):
            create_backend("grpc", settings=PipelineConfig())


if __name__ == "__main__":
    unittest.main()
