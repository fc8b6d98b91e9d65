"""Answer-box overlays, question-bank crops and page masking for graded quizzes."""

__version__ = "0.1.0"
