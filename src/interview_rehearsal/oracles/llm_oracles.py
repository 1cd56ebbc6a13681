"""
Local oracles backed by an Ollama model.

Question generation and feedback generation for running without the
interview AI service. Transcription for this backend lives in
``interview_rehearsal.voice.stt``; there is no local generative synthesis.
"""

import json
import logging
from typing import Any

from interview_rehearsal.models.llm_client import LLMClient, Message, extract_json
from interview_rehearsal.oracles.base import FeedbackRequest, QuestionReply, QuestionRequest

logger = logging.getLogger(__name__)

QUESTION_STYLES = {
    "concise": "Keep it brief, two sentences at most.",
    "balanced": "Natural and warm, two or three sentences. Professional but friendly.",
    "detailed": "Set the scene first, three or four sentences with concrete context.",
}

INTERVIEW_FOCUS = {
    "full": "Mix behavioral, technical and situational questions; vary the type from the previous question.",
    "behavioral": "Ask behavioral questions answerable in STAR form: teamwork, conflict, leadership, decisions.",
    "technical": "Ask technical questions on the tools, design and problem solving the job requires.",
    "quick": "Ask only high-impact questions on the most critical job requirements.",
}

LANGUAGE_NAMES = {"en": "English", "fr": "French"}


def _dump(value: Any) -> str:
    return json.dumps(value or {}, ensure_ascii=False)


def _language_instruction(language: str) -> str:
    return f"Conduct the interview entirely in {LANGUAGE_NAMES.get(language, 'English')}."


class LLMQuestionOracle:
    """Generates interviewer lines with a local model."""

    OPENING_PROMPT = """You are an interviewer opening a mock job interview.
Persona: {persona}
Candidate CV: {cv}
Job description: {job}
Style: {style}
Question focus: {focus}
{language}

Introduce yourself in one or two sentences, then ask one specific question about a
requirement or responsibility from the job description. The question is mandatory.
Return only the message text, no JSON."""

    NEXT_PROMPT = """You are conducting a mock job interview. This is question {number} of {target}.
Persona: {persona}
Candidate CV: {cv}
Job description: {job}
Conversation so far: {history}
Candidate's last response: {last_response}
Style: {style}
Question focus: {focus}
{language}

Ask exactly one new question that targets a job requirement not yet covered in the
conversation. Never repeat a topic. Do not wrap up the interview.
If the last response is "[SKIP] Skip this question." move on to a different topic.

Return a JSON object:
{{"message": "<short reaction and the next question>"}}

Only return valid JSON, no other text."""

    CLOSING_PROMPT = """You are wrapping up a mock job interview. All {target} questions have been asked.
Persona: {persona}
Conversation so far: {history}
Candidate's last response: {last_response}
{language}

Write a closing statement of one or two sentences thanking the candidate.
Do not ask another question and do not give any evaluation.

Return a JSON object:
{{"message": "<closing statement>"}}

Only return valid JSON, no other text."""

    def __init__(self, llm_client: LLMClient | None = None) -> None:
        """
        Initialize the question oracle.

        Args:
            llm_client: LLM client for generation. Creates default if None.
        """
        self._llm_client = llm_client or LLMClient()

    def build_prompt(self, request: QuestionRequest) -> str:
        """Render the opening, follow-up or closing prompt for a request."""
        persona = request.persona.model_dump(mode="json") if request.persona else {}
        language = _language_instruction(request.language)
        if request.is_opening:
            return self.OPENING_PROMPT.format(
                persona=_dump(persona),
                cv=_dump(request.cv_data),
                job=_dump(request.job_data),
                style=QUESTION_STYLES.get(request.question_style, QUESTION_STYLES["balanced"]),
                focus=INTERVIEW_FOCUS[request.interview_type.value],
                language=language,
            )
        if request.closing:
            return self.CLOSING_PROMPT.format(
                target=request.target_turns,
                persona=_dump(persona),
                history=json.dumps(request.history, ensure_ascii=False),
                last_response=request.last_response,
                language=language,
            )
        return self.NEXT_PROMPT.format(
            number=request.turn_index + 1,
            target=request.target_turns,
            persona=_dump(persona),
            cv=_dump(request.cv_data),
            job=_dump(request.job_data),
            history=json.dumps(request.history, ensure_ascii=False),
            last_response=request.last_response,
            style=QUESTION_STYLES.get(request.question_style, QUESTION_STYLES["balanced"]),
            focus=INTERVIEW_FOCUS[request.interview_type.value],
            language=language,
        )

    async def next_line(self, request: QuestionRequest) -> QuestionReply:
        """
        Produce the next interviewer line.

        Raises:
            OllamaError: If the model cannot be run.
        """
        response = await self._llm_client.chat([Message(role="user", content=self.build_prompt(request))])
        content = response.content.strip()
        if request.is_opening:
            return QuestionReply(message=content or None)

        parsed = extract_json(content)
        if parsed is not None:
            message = parsed.get("message")
            return QuestionReply(message=message if isinstance(message, str) else None)
        # Plain text answers are still usable as a line.
        return QuestionReply(message=content or None)


class LLMFeedbackOracle:
    """Scores a finished interview with a local model."""

    FEEDBACK_PROMPT = """Analyze this mock interview and give the candidate detailed feedback.
Write all text in {language_name}.

Question/answer pairs: {qa_pairs}
Candidate CV: {cv}
Job requirements: {job}

Skipped questions have the answer "[SKIPPED]": give them score 0, explain why the
question matters and still provide an ideal answer.

Return a JSON object:
{{
    "scores": {{"overall": <0-100>, "content": <0-100>, "delivery": <0-100>}},
    "{language}": {{
        "summary": "<two or three sentence assessment>",
        "strengths": ["<strength>"],
        "improvements": [{{"area": "<area>", "priority": "high|medium|low", "suggestion": "<suggestion>"}}],
        "next_steps": ["<action>"],
        "question_feedback": [
            {{"question": "<question>", "your_answer": "<summary>", "score": <0-100>,
              "feedback": "<feedback>", "ideal_answer": "<model answer in STAR form>"}}
        ]
    }}
}}

Only return valid JSON, no other text."""

    def __init__(self, llm_client: LLMClient | None = None) -> None:
        """
        Initialize the feedback oracle.

        Args:
            llm_client: LLM client for generation. Creates default if None.
        """
        self._llm_client = llm_client or LLMClient()

    async def generate_feedback(self, request: FeedbackRequest) -> dict[str, Any]:
        """
        Produce the raw feedback payload; shape validation is left to the aggregator.

        Raises:
            OllamaError: If the model cannot be run.
        """
        prompt = self.FEEDBACK_PROMPT.format(
            language=request.language,
            language_name=LANGUAGE_NAMES.get(request.language, "English"),
            qa_pairs=json.dumps([pair.model_dump() for pair in request.qa_pairs], ensure_ascii=False),
            cv=_dump(request.cv_data),
            job=_dump(request.job_data),
        )
        logger.info(f"[FEEDBACK] requesting local feedback for {len(request.qa_pairs)} pairs")
        return await self._llm_client.chat_with_json([Message(role="user", content=prompt)])
