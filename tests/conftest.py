"""
Shared fixtures: small synthetic page images built with Pillow.
"""

import io

import pytest
from PIL import Image

from quiz_marker.data_model import BoundingBox, GradedQuestion, QuestionType

RED = (255, 0, 0)


def image_bytes(size=(200, 100), color=RED, fmt="PNG", mode="RGB"):
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def make_question(number="1", box=None, correct_answer="B", is_correct=False, student_answer="A"):
    return GradedQuestion(
        section="Part A",
        question_number=number,
        question=f"Question {number}",
        question_type=QuestionType.MULTIPLE_CHOICE,
        student_answer=student_answer,
        is_correct=is_correct,
        choices=["A", "B", "C", "D"],
        correct_answer=correct_answer,
        explanation="Because.",
        bounding_box=box,
    )


@pytest.fixture
def png_page():
    """200x100 solid red PNG, as bytes."""
    return image_bytes()


@pytest.fixture
def jpeg_page():
    return image_bytes(fmt="JPEG")


@pytest.fixture
def page_file(tmp_path):
    path = tmp_path / "page.png"
    Image.new("RGB", (1000, 500), (10, 20, 30)).save(path)
    return path


@pytest.fixture
def box():
    return BoundingBox(x=0.1, y=0.2, width=0.2, height=0.2, image_index=0)
