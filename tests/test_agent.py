import json
import threading
from unittest.mock import MagicMock

import pytest

from limitless_sync.agent import SyncAgent
from limitless_sync.llm import LlmClient
from limitless_sync.state import Phase

from conftest import FakeResponse, lifelog


@pytest.fixture
def messages():
    return []


@pytest.fixture
def llm(fast_policy):
    return LlmClient("sk-test", "gpt-4", api_url="https://llm.example.test/v1",
                     policy=fast_policy, session=MagicMock())


@pytest.fixture
def agent(settings, tmp_path, api_client, llm, today, messages):
    return SyncAgent(settings, settings_path=tmp_path / "sync.json", notify=messages.append,
                     api_client=api_client, llm_client=llm, today=today, initial_stagger=0)


def saved(agent):
    return json.loads(agent.settings_path.read_text())


def models_response(*ids):
    return FakeResponse(200, {"data": [{"id": i} for i in ids]})


def test_sync_persists_cursor(agent, fake_api):
    fake_api.days["2024-06-02"] = [[lifelog("a", "2024-06-02T08:00:00Z")]]

    result = agent.sync()

    assert result.outcome is Phase.COMPLETED
    assert saved(agent)["last_sync_timestamp"] == "2024-06-02T08:00:00Z"
    assert agent.store.exists("Limitless/2024-06-02.md")


def test_reset_cursor(agent, settings, messages):
    settings.last_sync_timestamp = "2024-06-02T08:00:00Z"

    assert agent.reset_cursor()

    assert settings.last_sync_timestamp == ""
    assert saved(agent)["last_sync_timestamp"] == ""


def test_reset_cursor_refused_during_sync(agent, settings, messages):
    settings.last_sync_timestamp = "2024-06-02T08:00:00Z"
    agent.sync_state.begin()

    assert not agent.reset_cursor()
    assert settings.last_sync_timestamp == "2024-06-02T08:00:00Z"


def test_test_api_connection(agent, fake_api, messages):
    assert agent.test_api_connection()
    assert messages[-1] == "Connection successful! API key is valid."


def test_test_api_connection_bad_key(agent, messages):
    agent.client.session.get.side_effect = [FakeResponse(401)]

    assert not agent.test_api_connection()
    assert messages[-1] == "API key is invalid. Please check your API key."


def test_test_api_connection_without_key(agent, settings, messages):
    settings.api_key = ""
    assert not agent.test_api_connection()
    assert messages == ["Please enter an API key first"]


def test_enable_summarization_requires_valid_model(agent, llm, settings):
    llm.session.get.side_effect = [models_response("gpt-3.5-turbo")]

    check = agent.enable_summarization()

    assert not check.ok
    assert check.models == ["gpt-3.5-turbo"]
    assert not settings.summarization_enabled
    assert saved(agent)["summarization_enabled"] is False


def test_enable_summarization(agent, llm, settings, messages):
    llm.session.get.side_effect = [models_response("gpt-4", "gpt-4o")]

    check = agent.enable_summarization()

    assert check.ok
    assert settings.summarization_enabled
    assert saved(agent)["summarization_enabled"] is True
    assert messages[-1] == "Summarization enabled"


def test_enable_summarization_with_rejected_key(agent, llm, settings):
    llm.session.get.side_effect = [FakeResponse(401)]

    check = agent.enable_summarization()

    assert not check.ok
    assert not settings.summarization_enabled


def test_removing_openai_key_disables_summarization(agent, settings):
    settings.summarization_enabled = True

    check = agent.set_openai_api_key("")

    assert not check.ok
    assert not settings.summarization_enabled
    assert saved(agent)["openai_api_key"] == ""


def test_setting_openai_key_is_saved(agent, llm, settings):
    check = agent.set_openai_api_key("sk-new")

    assert check.ok
    assert llm.key == "sk-new"
    assert saved(agent)["openai_api_key"] == "sk-new"


def test_summarize_requires_enabled(agent, llm, messages):
    assert agent.summarize() is None
    assert llm.session.post.call_count == 0
    assert "not enabled" in messages[-1]


def test_tick_runs_sync_and_summarization(agent, fake_api, llm, settings):
    settings.summarization_enabled = True
    fake_api.days["2024-06-03"] = [[lifelog("a", "2024-06-03T08:00:00Z")]]
    llm.session.post.side_effect = [FakeResponse(200, {"choices": [{"message": {"content": "sum"}}]})]

    agent.tick()

    assert agent.sync_state.snapshot().last_outcome is Phase.COMPLETED
    assert agent.summary_state.snapshot().last_outcome is Phase.COMPLETED
    assert agent.store.exists("Summaries/2024-06-03.md")


def test_tick_skips_active_sync(agent, fake_api):
    agent.sync_state.begin()

    agent.tick()

    assert fake_api.calls == []


def test_run_forever_stops(agent, fake_api):
    stop = threading.Event()
    fake_api.on_call = lambda params: stop.set()

    agent.run_forever(stop, interval_minutes=60)

    assert stop.is_set()
    assert len(fake_api.calls) >= 1
