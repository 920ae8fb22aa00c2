"""Feedback synthesis for the generation loop.

Provides the regeneration message built from validation issues and the
history of feedback accumulated across iterations.
"""

from diagrammer.feedback.lib import (
    ALL_CLEAR_MESSAGE,
    FeedbackHistory,
    build_feedback_message,
)

__all__ = [
    "ALL_CLEAR_MESSAGE",
    "FeedbackHistory",
    "build_feedback_message",
]
