import json

import httpx
import pytest

from gradewise.config import Settings
from gradewise.exceptions import ConfigurationError, TransportError
from gradewise.schemas.assessment import Question
from gradewise.services.fallbacks import ACCURACY_UNAVAILABLE
from gradewise.services.llm import LLMClient
from gradewise.services.rubric_grader import RubricGrader


def _client(settings: Settings, handler) -> LLMClient:
    client = LLMClient(settings)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


class TestConfiguration:
    def test_missing_key_is_rejected(self):
        with pytest.raises(ConfigurationError):
            LLMClient(Settings(llm_api_key=""))

    def test_ollama_needs_no_key(self):
        client = LLMClient(
            Settings(llm_provider="ollama", llm_api_key="", llm_base_url="http://localhost:11434/v1")
        )

        assert client.provider == "ollama"
        assert client._base_url == "http://localhost:11434"


class TestChat:
    @pytest.mark.asyncio
    async def test_openai_compatible(self, mock_settings):
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url == "http://llm.test/v1/chat/completions"
            seen.append(json.loads(request.content))
            return httpx.Response(
                200, json={"choices": [{"message": {"content": "  Hello there  "}}]}
            )

        client = _client(mock_settings, handler)

        reply = await client.execute_prompt("system", "user", temperature=0.1, max_tokens=50)

        assert reply == "Hello there"
        body = seen[0]
        assert body["model"] == "test-model"
        assert body["temperature"] == 0.1
        assert body["max_tokens"] == 50
        assert [m["role"] for m in body["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_dashscope_native(self):
        settings = Settings(
            llm_provider="dashscope",
            llm_api_key="k",
            llm_base_url="http://dashscope.test/api/v1/services/aigc/text-generation/generation",
            llm_max_retries=0,
        )

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["parameters"]["max_tokens"] == 300
            return httpx.Response(200, json={"output": {"text": "Bonjour"}})

        client = _client(settings, handler)

        assert await client.execute_prompt("s", "u", max_tokens=300) == "Bonjour"

    @pytest.mark.asyncio
    async def test_ollama_stream(self):
        settings = Settings(
            llm_provider="ollama", llm_base_url="http://ollama.test", llm_max_retries=0
        )
        lines = [
            json.dumps({"message": {"content": "Hel"}}),
            "not-json",
            json.dumps({"message": {"content": "lo"}, "done": True}),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/chat"
            return httpx.Response(200, text="\n".join(lines))

        client = _client(settings, handler)

        assert await client.execute_prompt("s", "u") == "Hello"

    @pytest.mark.asyncio
    async def test_server_error_raises_transport_error(self, mock_settings):
        client = _client(mock_settings, lambda request: httpx.Response(500))

        with pytest.raises(TransportError):
            await client.execute_prompt("s", "u")

    @pytest.mark.asyncio
    async def test_unexpected_body_raises_transport_error(self, mock_settings):
        client = _client(mock_settings, lambda request: httpx.Response(200, json={"oops": 1}))

        with pytest.raises(TransportError):
            await client.execute_prompt("s", "u")

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self, mock_settings):
        settings = mock_settings.model_copy(update={"llm_max_retries": 1, "llm_retry_delay": 0})
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

        client = _client(settings, handler)

        assert await client.execute_prompt("s", "u") == "ok"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, mock_settings):
        settings = mock_settings.model_copy(update={"llm_max_retries": 3, "llm_retry_delay": 0})
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(401)

        client = _client(settings, handler)

        with pytest.raises(TransportError):
            await client.execute_prompt("s", "u")
        assert calls == 1


class TestEmbeddings:
    @pytest.mark.asyncio
    async def test_batch_is_ordered_by_index(self, mock_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/embeddings"
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"index": 1, "embedding": [0.0, 1.0]},
                        {"index": 0, "embedding": [1.0, 0.0]},
                    ]
                },
            )

        client = _client(mock_settings, handler)

        assert await client.compute_embedding(["a", "b"]) == [[1.0, 0.0], [0.0, 1.0]]

    @pytest.mark.asyncio
    async def test_single_text_returns_one_vector(self, mock_settings):
        client = _client(
            mock_settings,
            lambda request: httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.5]}]}),
        )

        assert await client.compute_embedding("a") == [0.5]

    @pytest.mark.asyncio
    async def test_count_mismatch(self, mock_settings):
        client = _client(
            mock_settings,
            lambda request: httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.5]}]}),
        )

        with pytest.raises(TransportError):
            await client.compute_embedding(["a", "b"])

    @pytest.mark.asyncio
    async def test_empty_batch(self, mock_settings):
        client = _client(mock_settings, lambda request: pytest.fail("no request expected"))

        assert await client.compute_embedding([]) == []


class TestReachability:
    @pytest.mark.asyncio
    async def test_reachable(self, mock_settings):
        client = _client(mock_settings, lambda request: httpx.Response(200, json={"data": []}))

        assert await client.is_reachable()

    @pytest.mark.asyncio
    async def test_connection_error(self, mock_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = _client(mock_settings, handler)

        assert not await client.is_reachable()


def _refusal(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": None}}]})


def _read_timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("slow", request=request)


class TestFailOpen:
    @pytest.mark.asyncio
    async def test_null_content_raises_transport_error(self, mock_settings):
        client = _client(
            mock_settings,
            lambda request: httpx.Response(
                200,
                json={
                    "choices": [
                        {"message": {"content": None}, "finish_reason": "content_filter"}
                    ]
                },
            ),
        )

        with pytest.raises(TransportError):
            await client.execute_prompt("s", "u")

    @pytest.mark.asyncio
    async def test_null_dashscope_text_raises_transport_error(self):
        settings = Settings(
            llm_provider="dashscope",
            llm_api_key="k",
            llm_base_url="http://dashscope.test/generation",
            llm_max_retries=0,
        )
        client = _client(
            settings,
            lambda request: httpx.Response(
                200, json={"output": {"choices": [{"message": {"content": None}}]}}
            ),
        )

        with pytest.raises(TransportError):
            await client.execute_prompt("s", "u")

    @pytest.mark.asyncio
    async def test_timeout_raises_transport_error_after_retries(self, mock_settings):
        settings = mock_settings.model_copy(update={"llm_max_retries": 2, "llm_retry_delay": 0})
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(settings, handler)

        with pytest.raises(TransportError):
            await client.execute_prompt("s", "u")
        assert calls == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("handler", [_refusal, _read_timeout], ids=["refusal", "timeout"])
    async def test_grader_falls_back(self, mock_settings, handler):
        client = _client(mock_settings, handler)
        grader = RubricGrader(client, mock_settings)

        score = await grader.evaluate_accuracy(Question(question="Why?"), "Because.")

        assert score.is_fallback
        assert score.feedback == ACCURACY_UNAVAILABLE
