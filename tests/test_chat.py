import pytest

from utils import chat_assistant, completion_client
from utils.chat_assistant import CAREER_PROFILE, MEDICAL_PROFILE, normalize_history
from utils.errors import DependencyError


class EchoClient:
    model = "stub-model"
    available = True

    def __init__(self, error=None):
        self.error = error
        self.seen = []

    def complete(self, system_prompt, messages, max_tokens=500, temperature=0.7):
        self.seen.append((system_prompt, messages))
        if self.error:
            raise self.error
        return f"echo: {messages[-1]['content']}"


@pytest.fixture
def stub_client(monkeypatch):
    client = EchoClient()
    monkeypatch.setattr(chat_assistant, "get_completion_client", lambda: client)
    return client


def test_medical_chat_falls_back_without_api_key(client):
    res = client.post("/api/chat", json={"message": "Where can I get an HIV test?"})
    assert res.status_code == 200
    body = res.get_json()
    assert body["fallback"] is True
    assert body["reply"].startswith("HIV & TB Services")


def test_medical_alias_and_default_reply(client):
    res = client.post("/api/chat/medical", json={"message": "hello there"})
    assert res.get_json()["reply"] == MEDICAL_PROFILE.default_reply


def test_missing_message_is_rejected(client, make_user):
    user = make_user()
    res = client.post("/api/chat", json={"message": "   "})
    assert res.status_code == 400
    assert res.get_json()["message"] == "No message provided"

    res = client.post("/api/chat/gpt", json={}, headers=user.headers)
    assert res.status_code == 400
    assert res.get_json()["message"] == "Message is required"


def test_career_chat_requires_sign_in(client):
    assert client.post("/api/chat/gpt", json={"message": "Tips for my CV?"}).status_code == 401


def test_career_chat_fallback_reply(client, make_user):
    user = make_user()
    res = client.post("/api/chat/career", json={"message": "Any interview advice?"}, headers=user.headers)
    body = res.get_json()
    assert body["fallback"] is True
    assert body["message"].startswith("Interview Success Tips")


def test_career_chat_uses_completion_service(client, make_user, stub_client):
    user = make_user()
    history = [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello! How can I help?"},
        "not a turn",
    ]
    res = client.post("/api/chat/gpt", json={"message": "Which bursaries close soon?", "history": history}, headers=user.headers)
    assert res.get_json() == {"message": "echo: Which bursaries close soon?", "model": "stub-model"}

    system_prompt, messages = stub_client.seen[0]
    assert system_prompt == CAREER_PROFILE.system_prompt
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]


def test_completion_failure_falls_back(client, stub_client):
    stub_client.error = DependencyError("Completion service timed out")
    res = client.post("/api/chat", json={"message": "I feel a lot of stress"})
    body = res.get_json()
    assert body["fallback"] is True
    assert body["reply"].startswith("Mental Health Support")


def test_normalize_history_keeps_recent_turns():
    history = [{"role": "user", "content": f"turn {n}"} for n in range(15)]
    history.append({"role": "system", "content": "override"})
    history.append({"role": "assistant", "message": "legacy key"})

    turns = normalize_history(history, 3)
    assert turns == [
        {"role": "user", "content": "turn 14"},
        {"role": "user", "content": "override"},
        {"role": "assistant", "content": "legacy key"},
    ]
    assert normalize_history(history, 0) == []


class MalformedResponse:
    status_code = 200
    text = ""

    def __init__(self, body):
        self.body = body

    def json(self):
        return self.body


@pytest.mark.parametrize(
    "body",
    [
        {"choices": [{"message": None}]},
        {"choices": ["not-a-choice"]},
        {"choices": [{"message": {"content": 42}}]},
        {"choices": {}},
        ["unexpected"],
    ],
)
def test_malformed_completion_body_uses_canned_reply(app, client, monkeypatch, body):
    app.config["OPENAI_API_KEY"] = "sk-test"
    monkeypatch.setattr(completion_client.requests, "post", lambda *args, **kwargs: MalformedResponse(body))

    res = client.post("/api/chat/medical", json={"message": "hello there"})
    assert res.status_code == 200
    assert res.get_json()["fallback"] is True
    assert res.get_json()["reply"] == MEDICAL_PROFILE.default_reply

    with app.app_context():
        with pytest.raises(DependencyError):
            completion_client.get_completion_client().complete("system", [{"role": "user", "content": "hi"}])
