"""MemoraCard - spaced-repetition flashcard study engine."""

__version__ = "0.1.0"
