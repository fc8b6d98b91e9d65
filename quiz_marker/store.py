from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from .data_model import EssayGradingResult, GradedQuestion, GradingResult, QuizSession, ReviewQuestion, SavedEssay
from .errors import SessionNotFound

logger = logging.getLogger(__name__)

QUIZ_KEY = "quizDatabase"
ESSAY_KEY = "essayDatabase"

_UPDATABLE = {"is_solved", "reanswer_attempts", "student_answer", "correct_answer", "explanation"}


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    """
    Review database kept in one JSON file: graded quiz sessions (wrong answers
    to revisit) and graded essays. Bounding boxes are stored verbatim.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    # ---------- raw file ----------

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Failed to parse session store %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Session store %s does not hold an object, ignoring it", self.path)
            return {}
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    # ---------- quizzes ----------

    def get_quiz_sessions(self) -> List[QuizSession]:
        sessions = []
        for raw in self._read().get(QUIZ_KEY, []):
            try:
                sessions.append(QuizSession.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable quiz session: %s", e)
        return sessions

    def _write_quiz_sessions(self, sessions: List[QuizSession]) -> None:
        data = self._read()
        data[QUIZ_KEY] = [s.to_dict() for s in sessions]
        self._write(data)

    def save_quiz_session(self, result: GradingResult, image_urls: List[str], now: Optional[int] = None) -> Optional[QuizSession]:
        if not result.questions:
            return None
        timestamp = _now_ms() if now is None else int(now)
        questions = []
        for i, q in enumerate(result.questions):
            base = {f.name: getattr(q, f.name) for f in fields(GradedQuestion)}
            questions.append(ReviewQuestion(
                **base,
                id=f"{timestamp}-{i}",
                is_solved=q.is_correct,  # correct answers count as solved
                reanswer_attempts=0,
            ))
        session = QuizSession(
            timestamp=timestamp,
            questions=questions,
            image_urls=list(image_urls),
            score=result.score,
            total_questions=result.total_questions,
            model=result.model,
        )
        sessions = self.get_quiz_sessions()
        sessions.append(session)
        self._write_quiz_sessions(sessions)
        return session

    def get_quiz_session(self, session_id: int) -> QuizSession:
        for s in self.get_quiz_sessions():
            if s.timestamp == session_id:
                return s
        raise SessionNotFound(f"No quiz session {session_id}")

    def update_review_question(self, session_id: int, question_id: str, **updates: Any) -> ReviewQuestion:
        unknown = set(updates) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        sessions = self.get_quiz_sessions()
        for s in sessions:
            if s.timestamp != session_id:
                continue
            for q in s.questions:
                if q.id == question_id:
                    for k, v in updates.items():
                        setattr(q, k, v)
                    self._write_quiz_sessions(sessions)
                    return q
            raise SessionNotFound(f"No question {question_id} in session {session_id}")
        raise SessionNotFound(f"No quiz session {session_id}")

    def delete_quiz_session(self, session_id: int) -> bool:
        sessions = self.get_quiz_sessions()
        kept = [s for s in sessions if s.timestamp != session_id]
        if len(kept) == len(sessions):
            return False
        self._write_quiz_sessions(kept)
        return True

    def unsolved_questions(self) -> List[ReviewQuestion]:
        return [q for s in self.get_quiz_sessions() for q in s.questions if not q.is_solved]

    # ---------- essays ----------

    def get_essays(self) -> List[SavedEssay]:
        essays = []
        for raw in self._read().get(ESSAY_KEY, []):
            try:
                essays.append(SavedEssay.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable essay: %s", e)
        return essays

    def save_essay(self, result: EssayGradingResult, image_urls: List[str], now: Optional[int] = None) -> SavedEssay:
        essay = SavedEssay(
            title=result.title,
            scores=result.scores,
            transcribed_text=result.transcribed_text,
            overall_comment=result.overall_comment,
            feedback=dict(result.feedback),
            timestamp=_now_ms() if now is None else int(now),
            image_urls=list(image_urls),
        )
        data = self._read()
        data[ESSAY_KEY] = [e.to_dict() for e in self.get_essays()] + [essay.to_dict()]
        self._write(data)
        return essay

    def delete_essay(self, timestamp: int) -> bool:
        essays = self.get_essays()
        kept = [e for e in essays if e.timestamp != timestamp]
        if len(kept) == len(essays):
            return False
        data = self._read()
        data[ESSAY_KEY] = [e.to_dict() for e in kept]
        self._write(data)
        return True
