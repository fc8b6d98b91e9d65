"""Tests for grading payload parsing and bounding box validation."""

import json
import logging

import pytest

from quiz_marker.data_model import (
    NO_ANSWER,
    BoundingBox,
    Correctness,
    EssayGradingResult,
    GradedQuestion,
    GradingResult,
    QuestionType,
    QuizSession,
    summarize,
)
from quiz_marker.errors import MalformedBoundingBox


def _question_payload(**overrides):
    payload = {
        "section": "Part A",
        "questionNumber": "3",
        "question": "2 + 2 = ?",
        "questionType": "multiple-choice",
        "studentAnswer": "5",
        "isCorrect": False,
        "choices": ["3", "4", "5"],
        "correctAnswer": "4",
        "explanation": "Basic addition.",
        "boundingBox": {"x": 0.1, "y": 0.2, "width": 0.3, "height": 0.05, "imageIndex": 1},
    }
    payload.update(overrides)
    return payload


class TestBoundingBox:
    """Test BoundingBox.from_dict validation."""

    def test_valid_box(self):
        box = BoundingBox.from_dict({"x": 0.25, "y": 0.5, "width": 0.1, "height": 0.2, "imageIndex": 2}, image_count=3)
        assert box == BoundingBox(0.25, 0.5, 0.1, 0.2, 2)
        assert box.to_dict()["imageIndex"] == 2

    def test_position_clamped_and_size_capped(self):
        box = BoundingBox.from_dict({"x": -0.2, "y": 1.5, "width": 2.0, "height": 0.1, "imageIndex": 0})
        assert box.x == 0.0
        assert box.y == 1.0
        assert box.width == 1.0

    def test_degenerate_size_is_kept(self):
        box = BoundingBox.from_dict({"x": 0.5, "y": 0.5, "width": 0, "height": -0.1, "imageIndex": 0})
        assert box.width == 0
        assert box.height == -0.1
        assert box.is_degenerate

    def test_integral_float_index_accepted(self):
        box = BoundingBox.from_dict({"x": 0, "y": 0, "width": 0.1, "height": 0.1, "imageIndex": 1.0})
        assert box.image_index == 1

    @pytest.mark.parametrize("payload", [
        None,
        [0.1, 0.2, 0.3, 0.4],
        {"y": 0.1, "width": 0.1, "height": 0.1, "imageIndex": 0},
        {"x": "left", "y": 0.1, "width": 0.1, "height": 0.1, "imageIndex": 0},
        {"x": True, "y": 0.1, "width": 0.1, "height": 0.1, "imageIndex": 0},
        {"x": float("nan"), "y": 0.1, "width": 0.1, "height": 0.1, "imageIndex": 0},
        {"x": 0.1, "y": 0.1, "width": float("inf"), "height": 0.1, "imageIndex": 0},
        {"x": 0.1, "y": 0.1, "width": 0.1, "height": 0.1},
        {"x": 0.1, "y": 0.1, "width": 0.1, "height": 0.1, "imageIndex": 1.5},
        {"x": 0.1, "y": 0.1, "width": 0.1, "height": 0.1, "imageIndex": -1},
    ])
    def test_malformed_payloads_rejected(self, payload):
        with pytest.raises(MalformedBoundingBox):
            BoundingBox.from_dict(payload)

    def test_index_out_of_range_for_page_count(self):
        with pytest.raises(MalformedBoundingBox) as exc:
            BoundingBox.from_dict({"x": 0, "y": 0, "width": 0.1, "height": 0.1, "imageIndex": 2}, image_count=2)
        assert "out of range" in exc.value.reason


class TestGradedQuestion:
    """Test GradedQuestion parsing."""

    def test_full_payload(self):
        q = GradedQuestion.from_dict(_question_payload(), image_count=2)
        assert q.question_type is QuestionType.MULTIPLE_CHOICE
        assert q.correctness is Correctness.INCORRECT
        assert q.bounding_box.image_index == 1
        assert q.choices == ["3", "4", "5"]

    def test_bad_box_dropped_question_kept(self, caplog):
        with caplog.at_level(logging.WARNING):
            q = GradedQuestion.from_dict(_question_payload(), image_count=1)
        assert q.bounding_box is None
        assert q.question_number == "3"
        assert "dropping bounding box" in caplog.text

    def test_unknown_type_falls_back(self):
        q = GradedQuestion.from_dict(_question_payload(questionType="essay"))
        assert q.question_type is QuestionType.SHORT_ANSWER

    def test_defaults(self):
        q = GradedQuestion.from_dict({"questionNumber": 7})
        assert q.question_number == "7"
        assert q.student_answer == NO_ANSWER
        assert q.is_correct is False
        assert q.bounding_box is None
        assert q.correct_answer is None

    def test_to_dict_uses_wire_names(self):
        d = GradedQuestion.from_dict(_question_payload()).to_dict()
        assert d["questionNumber"] == "3"
        assert d["isCorrect"] is False
        assert d["boundingBox"] == {"x": 0.1, "y": 0.2, "width": 0.3, "height": 0.05, "imageIndex": 1}


class TestGradingResult:
    """Test GradingResult parsing and summary counts."""

    def test_from_json(self):
        text = json.dumps({"questions": [_question_payload()], "score": 0, "totalQuestions": 1, "model": "m"})
        result = GradingResult.from_json(text, image_count=2)
        assert len(result.questions) == 1
        assert result.total_questions == 1
        assert result.model == "m"

    def test_missing_questions_rejected(self):
        with pytest.raises(ValueError):
            GradingResult.from_dict({"score": 3})

    def test_score_and_total_default_from_questions(self):
        result = GradingResult.from_dict({"questions": [
            _question_payload(isCorrect=True),
            _question_payload(),
        ]})
        assert result.score == 1
        assert result.total_questions == 2

    def test_summarize(self):
        result = GradingResult.from_dict({"questions": [
            _question_payload(isCorrect=True),
            _question_payload(),
            _question_payload(studentAnswer=NO_ANSWER),
        ]})
        assert summarize(result) == (1, 1, 1)


class TestQuizSession:
    """Test stored session parsing."""

    def test_boxes_revalidated_against_stored_pages(self):
        session = QuizSession.from_dict({
            "timestamp": 5,
            "questions": [dict(_question_payload(), id="5-0", isSolved=False, reanswerAttempts=1)],
            "imageUrls": ["data:image/png;base64,AAAA"],
        })
        q = session.questions[0]
        # imageIndex 1 with a single stored page
        assert q.bounding_box is None
        assert q.id == "5-0"
        assert q.reanswer_attempts == 1


class TestEssay:
    """Test essay result parsing."""

    def test_title_defaults(self):
        essay = EssayGradingResult.from_dict({"scores": {"content": 7, "typoBonus": 1}})
        assert essay.title == "Untitled Essay"
        assert essay.scores.content == 7
        assert essay.scores.typo_bonus == 1
        assert set(essay.feedback) == {"content", "expression", "structure", "punctuation"}
