from __future__ import annotations

import csv
import io
from typing import List, Sequence, Tuple

from .data_model import GradedQuestion

HEADER = [
    "section", "question_number", "question_type", "student_answer",
    "correct", "correct_answer", "explanation", "image_index",
]

Row = Tuple[str, str, str, str, str, str, str, str]


def results_to_rows(questions: Sequence[GradedQuestion]) -> List[Row]:
    rows: List[Row] = []
    for q in questions:
        box = q.bounding_box
        rows.append((
            q.section,
            q.question_number,
            q.question_type.value,
            q.student_answer,
            "yes" if q.is_correct else "no",
            q.correct_answer or "",
            q.explanation or "",
            "" if box is None else str(box.image_index),
        ))
    return rows


def results_csv_string(questions: Sequence[GradedQuestion], delimiter: str = ",") -> str:
    buf = io.StringIO()
    w = csv.writer(buf, delimiter=delimiter, lineterminator="\n")
    w.writerow(HEADER)
    w.writerows(results_to_rows(questions))
    return buf.getvalue().rstrip()


def write_results_csv(path: str, questions: Sequence[GradedQuestion], delimiter: str = ",") -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f, delimiter=delimiter)
        w.writerow(HEADER)
        w.writerows(results_to_rows(questions))
