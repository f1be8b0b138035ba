import json

import httpx
import pytest
import respx

from conftest import OPENAI_URL, chat_body, chat_response
from patchwright.completion import (
    AzureProvider,
    CompletionClient,
    EmptyResponseError,
    MalformedJSONError,
    StandardProvider,
    TransportError,
    UsageRecord,
    resolve_provider,
)
from patchwright.config_loader import ProviderConfig

AZURE_BASE = "https://myres.openai.azure.com/openai/deployments/gpt4o"


def _client(**overrides) -> CompletionClient:
    data = {"api_key": "sk-test", **overrides}
    return CompletionClient(ProviderConfig(**data))


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("url", [
    AZURE_BASE,
    "https://openai.azure.com/v1",
    "https://MyRes.OpenAI.Azure.com/openai/deployments/x",
])
def test_azure_hosts_select_azure_variant(url):
    provider = resolve_provider(url, "k", "2024-06-01")
    assert isinstance(provider, AzureProvider)
    assert provider.headers() == {"api-key": "k"}
    assert provider.params() == {"api-version": "2024-06-01"}


@pytest.mark.parametrize("url", [
    "https://api.openai.com/v1",
    "https://proxy.example.com/openai.azure.com/v1",
    "https://openai.azure.com.evil.example/v1",
    "http://localhost:11434/v1",
])
def test_other_hosts_select_standard_variant(url):
    provider = resolve_provider(url, "k", "2024-06-01")
    assert isinstance(provider, StandardProvider)
    assert provider.headers() == {"Authorization": "Bearer k"}
    assert provider.params() == {}


def test_provider_repr_hides_key():
    assert "sk-secret" not in repr(resolve_provider(AZURE_BASE, "sk-secret"))
    assert "sk-secret" not in repr(resolve_provider("https://api.openai.com/v1", "sk-secret"))


def test_client_requires_key():
    with pytest.raises(ValueError):
        CompletionClient(ProviderConfig(api_key=None))


# ---------------------------------------------------------------------------
# Wire contract
# ---------------------------------------------------------------------------

@respx.mock
def test_standard_request_shape():
    route = respx.post(OPENAI_URL).mock(return_value=chat_response({"ok": True}))

    result = _client().complete("hello", max_tokens=123)

    assert result.payload == {"ok": True}
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert "api-key" not in request.headers
    assert not request.url.params
    assert json.loads(request.content) == {
        "model": "gpt-4o-mini",
        "messages": [{"role": "user", "content": "hello"}],
        "response_format": {"type": "json_object"},
        "max_tokens": 123,
    }


@respx.mock
def test_trailing_slash_on_base_url():
    route = respx.post(OPENAI_URL).mock(return_value=chat_response({}))
    _client(base_url="https://api.openai.com/v1/").complete("p")
    assert route.called


@respx.mock
def test_azure_request_uses_api_key_header_and_version():
    route = respx.post(
        host="myres.openai.azure.com",
        path="/openai/deployments/gpt4o/chat/completions",
    ).mock(return_value=chat_response({"ok": 1}))

    client = _client(base_url=AZURE_BASE, api_version="2024-06-01", model="my-deployment")
    result = client.complete("p")

    assert result.payload == {"ok": 1}
    request = route.calls.last.request
    assert request.headers["api-key"] == "sk-test"
    assert "Authorization" not in request.headers
    assert request.url.params["api-version"] == "2024-06-01"
    assert json.loads(request.content)["model"] == "my-deployment"


@respx.mock
def test_azure_without_version_has_no_query():
    route = respx.post(host="myres.openai.azure.com").mock(return_value=chat_response({}))
    _client(base_url=AZURE_BASE).complete("p")
    assert "api-version" not in route.calls.last.request.url.params


# ---------------------------------------------------------------------------
# Failure taxonomy
# ---------------------------------------------------------------------------

@respx.mock
def test_http_error_is_transport_failure():
    respx.post(OPENAI_URL).mock(return_value=httpx.Response(500, text="upstream exploded"))

    with pytest.raises(TransportError) as exc_info:
        _client().complete("p")

    err = exc_info.value
    assert err.status_code == 500
    assert err.body == "upstream exploded"
    assert str(err) == "LLM API error 500: upstream exploded"


@respx.mock
def test_timeout_is_transport_failure():
    respx.post(OPENAI_URL).mock(side_effect=httpx.ReadTimeout("too slow"))

    with pytest.raises(TransportError) as exc_info:
        _client(timeout_seconds=0.1).complete("p")
    assert exc_info.value.status_code is None


@respx.mock
def test_connection_error_is_transport_failure():
    respx.post(OPENAI_URL).mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(TransportError):
        _client().complete("p")


@pytest.mark.parametrize("body", [
    chat_body(""),
    chat_body("   \n"),
    {"choices": []},
    {"choices": [{"message": {"content": None}}]},
    {},
])
@respx.mock
def test_missing_content_is_empty_response(body):
    respx.post(OPENAI_URL).mock(return_value=httpx.Response(200, json=body))

    with pytest.raises(EmptyResponseError, match="Empty LLM response"):
        _client().complete("p")


@respx.mock
def test_non_json_content_is_malformed():
    respx.post(OPENAI_URL).mock(return_value=chat_response("Sure! Here is the fix: {oops"))

    with pytest.raises(MalformedJSONError):
        _client().complete("p")


@respx.mock
def test_non_json_body_is_malformed():
    respx.post(OPENAI_URL).mock(return_value=httpx.Response(200, text="<html>gateway</html>"))

    with pytest.raises(MalformedJSONError):
        _client().complete("p")


@respx.mock
def test_code_fenced_content_is_parsed():
    fenced = '```json\n{"skip": true, "reason": "nope"}\n```'
    respx.post(OPENAI_URL).mock(return_value=chat_response(fenced))

    assert _client().complete("p").payload == {"skip": True, "reason": "nope"}


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------

@respx.mock
def test_usage_is_recorded():
    usage = {"prompt_tokens": 100, "completion_tokens": 20, "total_tokens": 120}
    respx.post(OPENAI_URL).mock(return_value=httpx.Response(200, json=chat_body({}, usage)))

    client = _client()
    result = client.complete("p")

    assert result.tokens_used == 120
    assert client.usage.total_tokens == 120
    assert client.usage.call_count == 1
    assert client.usage.estimated_cost >= 0


def test_usage_for_unknown_model_costs_nothing():
    record = UsageRecord()
    cost = record.record("definitely-not-a-real-model-xyz", {"prompt_tokens": 5, "completion_tokens": 5})

    assert cost == 0.0
    assert record.total_tokens == 10
    assert record.summary()["call_count"] == 1


def test_usage_without_block():
    record = UsageRecord()
    assert record.record("gpt-4o-mini", None) == 0.0
    assert record.call_count == 1
    assert record.total_tokens == 0
