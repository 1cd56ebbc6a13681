"""
Local LLM client.

Drives a local Ollama model through the ``ollama run`` CLI. Used by the
local oracle backend for question and feedback generation, with
best-effort repair of the JSON that small models tend to emit.
"""

import ast
import asyncio
import json
import logging
import re
from typing import Any

from pydantic import BaseModel, Field

from interview_rehearsal.config import get_settings
from interview_rehearsal.errors import TransientNetworkError

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_MODEL = "gpt-oss:20b"

_JSON_ONLY = "You must respond with valid JSON only. No additional text or explanation."


class Message(BaseModel):
    """A message in a conversation."""

    role: str = Field(..., description="Role of the speaker (system, user, assistant)")
    content: str = Field(..., description="Message content")


class LLMResponse(BaseModel):
    """Response from the local model."""

    content: str = Field(..., description="Generated text content")
    model: str = Field(default="", description="Model used for generation")


class OllamaError(TransientNetworkError):
    """Raised when the Ollama CLI fails, times out or is missing."""

    def __init__(self, message: str, return_code: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.return_code = return_code
        self.stderr = stderr


class LLMClient:
    """
    Ollama CLI client.

    Each call spawns ``ollama run <model>`` with the prompt on stdin. The
    process is killed if the awaiting task is cancelled.
    """

    def __init__(
        self,
        model: str | None = None,
        max_retries: int | None = None,
        timeout: int | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            model: Model name (uses config if not provided).
            max_retries: Retries on failure (uses config if not provided).
            timeout: Timeout in seconds per attempt (uses config if not provided).
        """
        settings = get_settings()
        self._model = model or settings.llm_model_name or DEFAULT_OLLAMA_MODEL
        self._max_retries = settings.llm_max_retries if max_retries is None else max_retries
        self._timeout = timeout or settings.llm_timeout
        logger.info(f"Initialized Ollama LLM client with model: {self._model}")

    @property
    def model(self) -> str:
        """Get the model name."""
        return self._model

    @staticmethod
    def build_prompt(messages: list[Message]) -> str:
        """Flatten chat messages into one role-tagged prompt."""
        parts = [f"[{msg.role.upper()}]\n{msg.content.strip()}\n" for msg in messages]
        parts.append("[ASSISTANT]\n")
        return "\n".join(parts)

    async def _run_once(self, prompt: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                "ollama",
                "run",
                self._model,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise OllamaError("Ollama CLI not found. Please install Ollama: https://ollama.ai") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(prompt.encode("utf-8")),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, asyncio.CancelledError):
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if process.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()
            raise OllamaError(
                f"Ollama exited with code {process.returncode}",
                return_code=process.returncode,
                stderr=err,
            )
        return stdout.decode("utf-8", errors="replace").strip()

    async def complete(self, prompt: str) -> LLMResponse:
        """
        Run a prompt, retrying on failure.

        Raises:
            OllamaError: If every attempt fails.
        """
        last_error: OllamaError | None = None
        for attempt in range(1, self._max_retries + 2):
            try:
                logger.debug(f"Running Ollama (attempt {attempt}) model={self._model}")
                text = await self._run_once(prompt)
                logger.debug(f"Ollama response length: {len(text)} chars")
                return LLMResponse(content=text, model=self._model)
            except asyncio.TimeoutError:
                logger.warning(f"Ollama timed out after {self._timeout}s (attempt {attempt})")
                last_error = OllamaError(f"Ollama timed out after {self._timeout} seconds")
            except OllamaError as e:
                if e.return_code is None:
                    raise
                logger.warning(f"Ollama failed (attempt {attempt}): {e.stderr or e}")
                last_error = e
        raise last_error or OllamaError("Ollama failed after all retries")

    async def chat(self, messages: list[Message]) -> LLMResponse:
        """Generate a reply to a conversation."""
        return await self.complete(self.build_prompt(messages))

    async def chat_with_json(self, messages: list[Message], schema: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Generate a reply expected to be a JSON object.

        Args:
            messages: Conversation history.
            schema: Optional JSON schema appended to the instruction.

        Returns:
            The parsed object, a list wrapped as ``{"items": [...]}``, or an
            empty dict when nothing parseable came back.
        """
        instruction = _JSON_ONLY
        if schema:
            instruction += f" Your response must match this JSON schema: {json.dumps(schema)}"
        response = await self.chat([Message(role="system", content=instruction), *messages])
        parsed = extract_json(response.content)
        if parsed is None:
            logger.warning(f"Failed to parse JSON from model output ({len(response.content)} chars)")
            return {}
        return parsed


def extract_json(content: str) -> dict[str, Any] | None:
    """
    Pull the first JSON object or array out of free-form model output.

    Returns:
        A dict (arrays are wrapped under ``items``) or None.
    """
    content = (content or "").strip()
    if not content:
        return None

    candidates = []
    balanced = _first_balanced_block(content)
    if balanced:
        candidates.append(balanced)
    candidates.append(content)

    for candidate in candidates:
        parsed = parse_json_loose(candidate)
        if isinstance(parsed, dict):
            return parsed
        if isinstance(parsed, list):
            return {"items": parsed}
    return None


def _first_balanced_block(content: str) -> str | None:
    starts = [i for i in (content.find("{"), content.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    opener = content[start]
    closer = "}" if opener == "{" else "]"
    depth = 0
    for i in range(start, len(content)):
        if content[i] == opener:
            depth += 1
        elif content[i] == closer:
            depth -= 1
            if depth == 0:
                return content[start : i + 1]
    return None


def fix_json_string(json_str: str) -> str:
    """Repair common defects in model-emitted JSON."""
    if not json_str:
        return ""
    result = json_str.strip()
    result = re.sub(r"^```(?:json)?\s*", "", result, flags=re.IGNORECASE)
    result = re.sub(r"\s*```$", "", result)
    result = result.replace("“", '"').replace("”", '"').replace("‘", "'").replace("’", "'")
    result = re.sub(r",(\s*[}\]])", r"\1", result)
    result = re.sub(r"\bNone\b", "null", result)
    result = re.sub(r"\bTrue\b", "true", result)
    result = re.sub(r"\bFalse\b", "false", result)
    # Bare object keys, only right after { or ,
    result = re.sub(r"([\{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)(\s*:)", r'\1"\2"\3', result)
    if "'" in result and '"' not in result:
        result = result.replace("'", '"')
    return result


def _coerce_to_json_types(obj: Any) -> Any:
    if obj is ...:
        return None
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, dict):
        return {str(k): _coerce_to_json_types(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_coerce_to_json_types(v) for v in obj]
    return str(obj)


def parse_json_loose(raw: str) -> dict[str, Any] | list[Any] | None:
    """
    Parse JSON with best-effort repair, falling back to a Python literal.

    Returns:
        A dict or list on success, else None.
    """
    if not raw:
        return None
    cleaned = fix_json_string(raw)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    obj: Any = None
    for source in (raw.strip(), cleaned):
        try:
            obj = ast.literal_eval(source)
            break
        except (ValueError, SyntaxError, TypeError, MemoryError, RecursionError):
            continue
    if not isinstance(obj, (dict, list, tuple, set)):
        return None
    return json.loads(json.dumps(_coerce_to_json_types(obj)))
