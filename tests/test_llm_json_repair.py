import pytest

from interview_rehearsal.models.llm_client import LLMClient, LLMResponse, Message, extract_json, fix_json_string


@pytest.mark.asyncio
async def test_chat_with_json_repairs_single_quotes_and_trailing_commas() -> None:
    client = LLMClient(model="test")

    async def fake_chat(messages: list[Message]):
        return LLMResponse(content="{'a': 1, 'b': 'x',}", model="test")

    # Monkeypatch instance method
    client.chat = fake_chat  # type: ignore[assignment]

    data = await client.chat_with_json(messages=[Message(role="user", content="hi")])
    assert data == {"a": 1, "b": "x"}


@pytest.mark.asyncio
async def test_chat_with_json_repairs_unquoted_keys_and_fenced_json() -> None:
    client = LLMClient(model="test")

    async def fake_chat(messages: list[Message]):
        return LLMResponse(
            content="""```json
            {a: 1, b: true, c: null,}
            ```""",
            model="test",
        )

    client.chat = fake_chat  # type: ignore[assignment]

    data = await client.chat_with_json(messages=[Message(role="user", content="hi")])
    assert data == {"a": 1, "b": True, "c": None}


@pytest.mark.asyncio
async def test_chat_with_json_prepends_json_instruction() -> None:
    client = LLMClient(model="test")
    seen: list[list[Message]] = []

    async def fake_chat(messages: list[Message]):
        seen.append(messages)
        return LLMResponse(content='Sure! {"scores": {"content": 80}} Hope that helps.', model="test")

    client.chat = fake_chat  # type: ignore[assignment]

    data = await client.chat_with_json(messages=[Message(role="user", content="score it")], schema={"type": "object"})
    assert data == {"scores": {"content": 80}}
    assert seen[0][0].role == "system"
    assert '"type": "object"' in seen[0][0].content


@pytest.mark.asyncio
async def test_chat_with_json_returns_empty_dict_on_garbage() -> None:
    client = LLMClient(model="test")

    async def fake_chat(messages: list[Message]):
        return LLMResponse(content="I cannot answer that.", model="test")

    client.chat = fake_chat  # type: ignore[assignment]

    assert await client.chat_with_json(messages=[Message(role="user", content="hi")]) == {}


def test_extract_json_wraps_arrays() -> None:
    assert extract_json('["a", "b"]') == {"items": ["a", "b"]}


def test_extract_json_accepts_python_literals() -> None:
    assert extract_json("{'ok': True, 'value': None}") == {"ok": True, "value": None}


def test_fix_json_string_normalizes_smart_quotes() -> None:
    assert fix_json_string("{“message”: “hi”}") == '{"message": "hi"}'


def test_build_prompt_tags_roles() -> None:
    prompt = LLMClient.build_prompt([Message(role="system", content="Be brief."), Message(role="user", content=" Hi ")])
    assert prompt == "[SYSTEM]\nBe brief.\n\n[USER]\nHi\n\n[ASSISTANT]\n"
