import pytest
import requests

from memoire.errors import CompletionError
from memoire.llm import completions_client as cc
from memoire.llm.json_output import parse_json_object


class FakeResponse:
    def __init__(self, data, status=200):
        self._data = data
        self.status_code = status

    def json(self):
        return self._data

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


def completion(content, prompt_tokens=100, completion_tokens=20):
    return {
        "chatCompletion": {
            "chatCompletionContent": content,
            "chatCompletionMetadata": {
                "promptTokenCount": prompt_tokens,
                "completionTokenCount": completion_tokens,
            },
        }
    }


@pytest.fixture
def studio_env(monkeypatch):
    monkeypatch.setenv("MEMOIRE_LLM_API_KEY", "key")
    monkeypatch.setenv("MEMOIRE_LLM_BASE_URL", "https://llm.test/")
    monkeypatch.delenv("MEMOIRE_LLM_USER", raising=False)
    monkeypatch.delenv("MEMOIRE_LLM_PASSWORD", raising=False)


def test_missing_configuration(monkeypatch):
    monkeypatch.delenv("MEMOIRE_LLM_API_KEY", raising=False)
    with pytest.raises(CompletionError):
        cc.CompletionsClient()


def test_done_response_is_returned_with_usage(studio_env, monkeypatch):
    calls = []

    def fake_post(url, json=None, **kwargs):
        calls.append((url, json))
        return FakeResponse({"done": True, "response": completion('{"questions": []}')})

    monkeypatch.setattr(cc.requests, "post", fake_post)
    client = cc.CompletionsClient(model="gpt-4o-mini")
    content, usage = client.get_completion("Bonjour", json_output=True)

    assert content == '{"questions": []}'
    assert usage == {"prompt_tokens": 100, "completion_tokens": 20}
    url, payload = calls[0]
    assert url == "https://llm.test/api/chat-completion/v1/chatCompletions:compute"
    assert payload["response_format"] == {"type": "json_object"}
    assert client.service_costs > 0


def test_async_failure_falls_back_to_sync(studio_env, monkeypatch):
    urls = []

    def fake_post(url, json=None, **kwargs):
        urls.append(url)
        if url.endswith("chatCompletions:compute"):
            raise requests.ConnectionError("refused")
        return FakeResponse(completion("réponse"))

    monkeypatch.setattr(cc.requests, "post", fake_post)
    content, _ = cc.CompletionsClient().get_completion("Bonjour")
    assert content == "réponse"
    assert urls[-1].endswith("chatCompletionsSync:compute")


def test_sync_failure_raises_completion_error(studio_env, monkeypatch):
    def fake_post(url, json=None, **kwargs):
        if url.endswith("chatCompletions:compute"):
            return FakeResponse({"error": "busy"})
        return FakeResponse({}, status=503)

    monkeypatch.setattr(cc.requests, "post", fake_post)
    with pytest.raises(CompletionError):
        cc.CompletionsClient().get_completion("Bonjour")


def test_polls_long_running_operation(studio_env, monkeypatch):
    monkeypatch.setattr(cc.requests, "post", lambda url, **kw: FakeResponse({"id": "op-1", "done": False}))
    polls = iter([FakeResponse({"done": False}), FakeResponse({"done": True, "response": completion("ok")})])
    monkeypatch.setattr(cc.requests, "get", lambda url, **kw: next(polls))
    monkeypatch.setattr(cc.time, "sleep", lambda s: None)
    content, _ = cc.CompletionsClient().get_completion("Bonjour")
    assert content == "ok"


def test_build_client(studio_env):
    assert isinstance(cc.build_client("studio"), cc.CompletionsClient)
    assert isinstance(cc.build_client("openai"), cc.OpenAICompletions)
    with pytest.raises(ValueError):
        cc.build_client("other")


def test_parse_json_object_variants():
    assert parse_json_object('{"a": 1}') == {"a": 1}
    assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_object('Voici : {"a": {"b": 2}} merci') == {"a": {"b": 2}}
    with pytest.raises(ValueError):
        parse_json_object("[1, 2]")
    with pytest.raises(ValueError):
        parse_json_object("rien")
