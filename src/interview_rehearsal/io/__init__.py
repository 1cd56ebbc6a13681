"""
IO module for interview interfaces.

Provides text and voice interfaces for rehearsing interviews.
"""

from interview_rehearsal.io.text_interface import InterviewInterface, TextInterface
from interview_rehearsal.io.voice_interface import VoiceInterface

__all__ = ["InterviewInterface", "TextInterface", "VoiceInterface"]
