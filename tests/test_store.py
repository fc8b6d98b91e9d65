"""Tests for the JSON session store."""

import json
import logging

import pytest

from conftest import make_question
from quiz_marker.data_model import BoundingBox, EssayGradingResult, EssayScores, GradingResult
from quiz_marker.errors import SessionNotFound
from quiz_marker.store import ESSAY_KEY, QUIZ_KEY, SessionStore

URLS = ["data:image/png;base64,AAAA", "data:image/png;base64,BBBB"]


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "db" / "sessions.json")


@pytest.fixture
def result():
    return GradingResult(
        questions=[
            make_question("1", box=BoundingBox(0.1, 0.2, 0.3, 0.1, 1), is_correct=True, student_answer="B"),
            make_question("2", box=BoundingBox(0.4, 0.5, 0.2, 0.1, 0)),
            make_question("3"),
        ],
        score=1,
        total_questions=3,
        model="grader-1",
    )


class TestQuizSessions:
    """Test saving and reviewing quiz sessions."""

    def test_save_and_reload(self, store, result):
        session = store.save_quiz_session(result, URLS, now=1000)
        assert [q.id for q in session.questions] == ["1000-0", "1000-1", "1000-2"]
        assert [q.is_solved for q in session.questions] == [True, False, False]

        loaded = store.get_quiz_sessions()
        assert len(loaded) == 1
        s = loaded[0]
        assert s.timestamp == 1000
        assert s.image_urls == URLS
        assert s.score == 1
        assert s.model == "grader-1"
        assert s.questions[0].bounding_box == BoundingBox(0.1, 0.2, 0.3, 0.1, 1)
        assert s.questions[2].bounding_box is None

        raw = json.loads(store.path.read_text(encoding="utf-8"))
        assert raw[QUIZ_KEY][0]["questions"][0]["boundingBox"]["imageIndex"] == 1

    def test_empty_result_not_saved(self, store):
        assert store.save_quiz_session(GradingResult(), URLS) is None
        assert not store.path.exists()

    def test_get_missing_session(self, store, result):
        store.save_quiz_session(result, URLS, now=1)
        assert store.get_quiz_session(1).timestamp == 1
        with pytest.raises(SessionNotFound):
            store.get_quiz_session(2)

    def test_update_review_question(self, store, result):
        store.save_quiz_session(result, URLS, now=1000)
        q = store.update_review_question(1000, "1000-1", is_solved=True, reanswer_attempts=2)
        assert q.is_solved
        reloaded = store.get_quiz_session(1000).questions[1]
        assert reloaded.is_solved
        assert reloaded.reanswer_attempts == 2

    def test_update_rejects_unknown_fields(self, store, result):
        store.save_quiz_session(result, URLS, now=1000)
        with pytest.raises(ValueError):
            store.update_review_question(1000, "1000-1", bounding_box=None)

    def test_update_missing_targets(self, store, result):
        store.save_quiz_session(result, URLS, now=1000)
        with pytest.raises(SessionNotFound):
            store.update_review_question(999, "1000-1", is_solved=True)
        with pytest.raises(SessionNotFound):
            store.update_review_question(1000, "1000-9", is_solved=True)

    def test_unsolved_and_delete(self, store, result):
        store.save_quiz_session(result, URLS, now=1)
        store.save_quiz_session(result, URLS, now=2)
        assert len(store.unsolved_questions()) == 4
        assert store.delete_quiz_session(1)
        assert not store.delete_quiz_session(1)
        assert [s.timestamp for s in store.get_quiz_sessions()] == [2]

    def test_corrupt_file_reads_empty(self, store, caplog):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json", encoding="utf-8")
        with caplog.at_level(logging.WARNING):
            assert store.get_quiz_sessions() == []
        assert "Failed to parse session store" in caplog.text


class TestEssays:
    """Test essay storage alongside quiz sessions."""

    def test_save_list_delete(self, store, result):
        essay = EssayGradingResult(title="My Summer", scores=EssayScores(content=8, total=30),
                                   feedback={"content": "Good."})
        store.save_quiz_session(result, URLS, now=5)
        saved = store.save_essay(essay, URLS[:1], now=7)
        assert saved.timestamp == 7

        essays = store.get_essays()
        assert [e.title for e in essays] == ["My Summer"]
        assert essays[0].scores.content == 8
        assert essays[0].image_urls == URLS[:1]

        raw = json.loads(store.path.read_text(encoding="utf-8"))
        assert set(raw) == {QUIZ_KEY, ESSAY_KEY}

        assert store.delete_essay(7)
        assert not store.delete_essay(7)
        assert store.get_essays() == []
        assert len(store.get_quiz_sessions()) == 1
