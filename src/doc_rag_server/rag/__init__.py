"""
RAG Package

Answer synthesis over retrieved passages and the query service in front of
it.
"""

from .models import Answer, Citation, StreamEvent
from .synthesizer import AnswerSynthesizer

__all__ = ["Answer", "Citation", "StreamEvent", "AnswerSynthesizer"]
