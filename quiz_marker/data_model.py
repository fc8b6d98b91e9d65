from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import MalformedBoundingBox

logger = logging.getLogger(__name__)

NO_ANSWER = "No answer provided"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    FILL_IN_THE_BLANK = "fill-in-the-blank"
    SHORT_ANSWER = "short-answer"


class Correctness(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"

    @classmethod
    def from_flag(cls, is_correct: bool) -> "Correctness":
        return cls.CORRECT if is_correct else cls.INCORRECT


def _finite(payload: Dict[str, Any], key: str) -> float:
    if key not in payload:
        raise MalformedBoundingBox(f"missing '{key}'", payload)
    raw = payload[key]
    if isinstance(raw, bool):
        raise MalformedBoundingBox(f"'{key}' must be a number", payload)
    try:
        v = float(raw)
    except (TypeError, ValueError):
        raise MalformedBoundingBox(f"'{key}' must be a number", payload) from None
    if not math.isfinite(v):
        raise MalformedBoundingBox(f"'{key}' must be finite", payload)
    return v


def _index(payload: Dict[str, Any], image_count: Optional[int]) -> int:
    raw = payload.get("imageIndex", payload.get("image_index"))
    if raw is None or isinstance(raw, bool):
        raise MalformedBoundingBox("missing 'imageIndex'", payload)
    if isinstance(raw, float):
        if not raw.is_integer():
            raise MalformedBoundingBox("'imageIndex' must be an integer", payload)
        raw = int(raw)
    if not isinstance(raw, int):
        raise MalformedBoundingBox("'imageIndex' must be an integer", payload)
    if raw < 0 or (image_count is not None and raw >= image_count):
        raise MalformedBoundingBox(f"'imageIndex' {raw} out of range", payload)
    return raw


@dataclass(frozen=True)
class BoundingBox:
    """
    Answer region on one page, as fractions (0..1) of that page's natural
    pixel size. x/y are the top-left corner.
    """
    x: float
    y: float
    width: float
    height: float
    image_index: int = 0

    @classmethod
    def from_dict(cls, payload: Any, image_count: Optional[int] = None) -> "BoundingBox":
        """
        Validate untrusted model output into a BoundingBox.

        x/y are clamped into [0, 1] and width/height capped at 1. Zero or
        negative sizes are kept as-is: the cropper floors them and logs it.
        """
        if not isinstance(payload, dict):
            raise MalformedBoundingBox("expected an object", payload)
        x = min(1.0, max(0.0, _finite(payload, "x")))
        y = min(1.0, max(0.0, _finite(payload, "y")))
        w = min(1.0, _finite(payload, "width"))
        h = min(1.0, _finite(payload, "height"))
        return cls(x=x, y=y, width=w, height=h, image_index=_index(payload, image_count))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "imageIndex": self.image_index,
        }

    @property
    def is_degenerate(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass
class GradedQuestion:
    section: str
    question_number: str
    question: str
    question_type: QuestionType
    student_answer: str
    is_correct: bool
    choices: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    bounding_box: Optional[BoundingBox] = None

    @property
    def correctness(self) -> Correctness:
        return Correctness.from_flag(self.is_correct)

    @classmethod
    def _fields_from_dict(cls, d: Dict[str, Any], image_count: Optional[int]) -> Dict[str, Any]:
        if not isinstance(d, dict):
            raise ValueError("question must be an object")

        qnum = str(d.get("questionNumber", ""))
        raw_type = d.get("questionType", QuestionType.SHORT_ANSWER.value)
        try:
            qtype = QuestionType(raw_type)
        except ValueError:
            logger.warning("Question %s: unknown questionType %r, using short-answer", qnum, raw_type)
            qtype = QuestionType.SHORT_ANSWER

        box = None
        if d.get("boundingBox") is not None:
            try:
                box = BoundingBox.from_dict(d["boundingBox"], image_count=image_count)
            except MalformedBoundingBox as e:
                # Keep the question, drop only the overlay/crop for it.
                logger.warning("Question %s: dropping bounding box: %s", qnum, e.reason)

        choices = d.get("choices")
        return dict(
            section=str(d.get("section", "")),
            question_number=qnum,
            question=str(d.get("question", "")),
            question_type=qtype,
            student_answer=str(d.get("studentAnswer", NO_ANSWER)),
            is_correct=bool(d.get("isCorrect", False)),
            choices=[str(c) for c in choices] if isinstance(choices, list) else None,
            correct_answer=d.get("correctAnswer") or None,
            explanation=d.get("explanation") or None,
            bounding_box=box,
        )

    @classmethod
    def from_dict(cls, d: Dict[str, Any], image_count: Optional[int] = None) -> "GradedQuestion":
        return cls(**cls._fields_from_dict(d, image_count))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "section": self.section,
            "questionNumber": self.question_number,
            "question": self.question,
            "questionType": self.question_type.value,
            "studentAnswer": self.student_answer,
            "isCorrect": self.is_correct,
        }
        if self.choices is not None:
            out["choices"] = list(self.choices)
        if self.correct_answer is not None:
            out["correctAnswer"] = self.correct_answer
        if self.explanation is not None:
            out["explanation"] = self.explanation
        if self.bounding_box is not None:
            out["boundingBox"] = self.bounding_box.to_dict()
        return out


@dataclass
class ReviewQuestion(GradedQuestion):
    # A wrong answer kept for later review.
    id: str = ""
    is_solved: bool = False
    reanswer_attempts: int = 0

    @classmethod
    def from_dict(cls, d: Dict[str, Any], image_count: Optional[int] = None) -> "ReviewQuestion":
        base = cls._fields_from_dict(d, image_count)
        return cls(
            **base,
            id=str(d.get("id", "")),
            is_solved=bool(d.get("isSolved", False)),
            reanswer_attempts=int(d.get("reanswerAttempts", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update({"id": self.id, "isSolved": self.is_solved, "reanswerAttempts": self.reanswer_attempts})
        return out


@dataclass
class GradingResult:
    questions: List[GradedQuestion] = field(default_factory=list)
    score: int = 0
    total_questions: int = 0
    model: Optional[str] = None
    token_usage: Optional[Dict[str, int]] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any], image_count: Optional[int] = None) -> "GradingResult":
        if not isinstance(d, dict) or not isinstance(d.get("questions"), list):
            raise ValueError("grading result must be an object with a 'questions' list")
        questions = [GradedQuestion.from_dict(q, image_count=image_count) for q in d["questions"]]
        score = d.get("score")
        total = d.get("totalQuestions")
        return cls(
            questions=questions,
            score=int(score) if score is not None else sum(1 for q in questions if q.is_correct),
            total_questions=int(total) if total is not None else len(questions),
            model=d.get("model"),
            token_usage=d.get("tokenUsage"),
        )

    @classmethod
    def from_json(cls, text: str, image_count: Optional[int] = None) -> "GradingResult":
        return cls.from_dict(json.loads(text), image_count=image_count)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "questions": [q.to_dict() for q in self.questions],
            "score": self.score,
            "totalQuestions": self.total_questions,
        }
        if self.model is not None:
            out["model"] = self.model
        if self.token_usage is not None:
            out["tokenUsage"] = dict(self.token_usage)
        return out


def summarize(result: GradingResult) -> Tuple[int, int, int]:
    """Return (correct, wrong, not_answered) as shown on the results screen."""
    correct = result.score
    not_answered = sum(1 for q in result.questions if q.student_answer == NO_ANSWER)
    wrong = result.total_questions - correct - not_answered
    return correct, wrong, not_answered


@dataclass
class QuestionWithGraphic:
    section: str
    question_number: str
    question: str
    correct_answer: str
    question_graphic: str  # data URL
    explanation: Optional[str] = None


@dataclass
class QuizSession:
    timestamp: int
    questions: List[ReviewQuestion] = field(default_factory=list)
    image_urls: List[str] = field(default_factory=list)
    score: int = 0
    total_questions: int = 0
    model: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "QuizSession":
        image_urls = [str(u) for u in d.get("imageUrls", [])]
        return cls(
            timestamp=int(d["timestamp"]),
            questions=[ReviewQuestion.from_dict(q, image_count=len(image_urls) or None) for q in d.get("questions", [])],
            image_urls=image_urls,
            score=int(d.get("score", 0)),
            total_questions=int(d.get("totalQuestions", 0)),
            model=d.get("model"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "questions": [q.to_dict() for q in self.questions],
            "imageUrls": list(self.image_urls),
            "score": self.score,
            "totalQuestions": self.total_questions,
        }
        if self.model is not None:
            out["model"] = self.model
        return out


ESSAY_CRITERIA = ("content", "expression", "structure", "punctuation")


@dataclass
class EssayScores:
    content: float = 0.0
    expression: float = 0.0
    structure: float = 0.0
    punctuation: float = 0.0
    typo_bonus: float = 0.0
    total: float = 0.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EssayScores":
        return cls(
            content=float(d.get("content", 0)),
            expression=float(d.get("expression", 0)),
            structure=float(d.get("structure", 0)),
            punctuation=float(d.get("punctuation", 0)),
            typo_bonus=float(d.get("typoBonus", 0)),
            total=float(d.get("total", 0)),
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "content": self.content,
            "expression": self.expression,
            "structure": self.structure,
            "punctuation": self.punctuation,
            "typoBonus": self.typo_bonus,
            "total": self.total,
        }


@dataclass
class EssayGradingResult:
    title: str
    scores: EssayScores
    transcribed_text: str = ""
    overall_comment: str = ""
    feedback: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def _fields_from_dict(cls, d: Dict[str, Any]) -> Dict[str, Any]:
        feedback = d.get("feedback") or {}
        return dict(
            title=str(d.get("title") or "Untitled Essay"),
            scores=EssayScores.from_dict(d.get("scores") or {}),
            transcribed_text=str(d.get("transcribedText", "")),
            overall_comment=str(d.get("overallComment", "")),
            feedback={k: str(feedback.get(k, "")) for k in ESSAY_CRITERIA},
        )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EssayGradingResult":
        return cls(**cls._fields_from_dict(d))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "scores": self.scores.to_dict(),
            "transcribedText": self.transcribed_text,
            "overallComment": self.overall_comment,
            "feedback": dict(self.feedback),
        }


@dataclass
class SavedEssay(EssayGradingResult):
    timestamp: int = 0
    image_urls: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SavedEssay":
        return cls(
            **cls._fields_from_dict(d),
            timestamp=int(d.get("timestamp", 0)),
            image_urls=[str(u) for u in d.get("imageUrls", [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update({"timestamp": self.timestamp, "imageUrls": list(self.image_urls)})
        return out
