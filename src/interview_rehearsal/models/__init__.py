"""
Local model clients.
"""

from interview_rehearsal.models.llm_client import LLMClient, LLMResponse, Message, OllamaError

__all__ = ["LLMClient", "LLMResponse", "Message", "OllamaError"]
