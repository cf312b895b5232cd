import random
from unittest.mock import patch

import pytest

from epa_tutor.app import (
    SessionExitRequested, cmd_tutor, resolve_api_key, run_exam, session_prompt,
)
from epa_tutor.config import Settings
from epa_tutor.quiz import ExamMode, ExamSession, SessionState
from epa_tutor.tutor import CLEARED, TutorChat
from conftest import make_questions


class EchoClient:
    def generate(self, contents):
        return "Echo: " + contents[-1]["parts"][0]["text"]

    def close(self):
        pass


def test_session_exit_requested_is_exception():
    with pytest.raises(SessionExitRequested):
        raise SessionExitRequested()


def test_session_prompt_raises_on_q():
    with patch("epa_tutor.app.Prompt.ask", return_value="q"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_raises_on_menu():
    with patch("epa_tutor.app.Prompt.ask", return_value="menu"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_returns_normal_input():
    with patch("epa_tutor.app.Prompt.ask", return_value="hello"):
        result = session_prompt("test prompt")
        assert result == "hello"


def test_session_prompt_offers_exit_words():
    with patch("epa_tutor.app.Prompt.ask", return_value="b") as ask:
        session_prompt("answer", choices=["a", "b", "c", "d"])
    assert ask.call_args.kwargs["choices"] == ["a", "b", "c", "d", "q", "menu"]


def test_resolve_api_key_prefers_stored_key(store):
    settings = Settings(gemini_api_key="from-env")
    assert resolve_api_key(store, settings) == "from-env"
    store.set_api_key("stored")
    assert resolve_api_key(store, settings) == "stored"


def _session(store, count=3):
    session = ExamSession(questions=make_questions(count), rng=random.Random(1),
                          on_complete=store.record_attempt)
    session.start(ExamMode.FULL)
    return session


def test_run_exam_records_attempt(store):
    """Answer, press Enter, repeat; the last Enter shows the results."""
    session = _session(store)
    with patch("epa_tutor.app.Prompt.ask", side_effect=["a", "", "b", "", "a", ""]):
        run_exam(session, timer=lambda: 0.0)

    assert session.state is SessionState.RESULTS
    assert session.score == 2
    assert len(store.attempts) == 1
    assert store.attempts[0].mode == "full"
    assert store.attempts[0].total == 3


def test_run_exam_time_runs_out(store):
    session = _session(store)
    times = iter([0.0, 45 * 60.0])
    with patch("epa_tutor.app.Prompt.ask", side_effect=["a"]):
        run_exam(session, timer=lambda: next(times))

    assert session.state is SessionState.RESULTS
    assert all(not item.answered for item in session.review())
    assert store.attempts[0].score == 0
    assert store.attempts[0].total == 3


def test_run_exam_abandon_saves_nothing(store):
    session = _session(store)
    with patch("epa_tutor.app.Prompt.ask", side_effect=["a", "q"]):
        run_exam(session, timer=lambda: 0.0)

    assert session.state is SessionState.SELECTING
    assert store.attempts == []


def test_run_exam_without_questions(store):
    session = ExamSession(questions=make_questions(2, requirement="K1"), on_complete=store.record_attempt)
    session.start(ExamMode.TOPIC, topic="K3")
    with patch("epa_tutor.app.Prompt.ask") as ask:
        run_exam(session, timer=lambda: 0.0)
    ask.assert_not_called()
    assert session.state is SessionState.SELECTING
    assert store.attempts == []


def test_cmd_tutor_conversation(store):
    store.set_api_key("k")
    chat = TutorChat(lambda key: EchoClient())
    with patch("epa_tutor.app.Prompt.ask", side_effect=["What is RCD?", "clear", "q"]):
        cmd_tutor(store, Settings(), chat)
    assert [t.text for t in chat.transcript] == [CLEARED]


def test_cmd_tutor_without_key_returns(store):
    chat = TutorChat(lambda key: EchoClient())
    with patch("epa_tutor.app.Prompt.ask", side_effect=["hello"]):
        cmd_tutor(store, Settings(), chat)
    assert [t.role for t in chat.transcript] == ["model"]
