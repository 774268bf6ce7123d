"""Real API integration tests.

These tests make real Gemini calls and are intentionally compact:
- ENABLE_API_TESTS=1 is required to run any API tests
- GEMINI_API_KEY is required
"""

from __future__ import annotations

from pydantic import BaseModel
import pytest

from gemform import Client, FinishReason, PromptOptions, TextTools
from tests.helpers import Person

pytestmark = pytest.mark.api


class Category(BaseModel):
    name: str
    parent: Category | None = None


@pytest.mark.asyncio
async def test_structured_object(gemini_api_key: str, gemini_test_model: str) -> None:
    async with Client(api_key=gemini_api_key, model=gemini_test_model) as client:
        prompt = client.create_prompt().add_text(
            "Invent a fictional person with a name and an age between 20 and 60."
        )
        result = await client.generate_object(prompt, Person)

    assert result.is_successful, result.error
    assert result.data.name
    assert 20 <= result.data.age <= 60


@pytest.mark.asyncio
async def test_continuation_under_tight_token_limit(
    gemini_api_key: str, gemini_test_model: str
) -> None:
    options = PromptOptions(max_output_tokens=24, thinking_budget=0, max_rounds=12)
    async with Client(
        api_key=gemini_api_key, model=gemini_test_model, default_options=options
    ) as client:
        prompt = client.create_prompt().add_text(
            "List ten fictional people, each with a name and an age."
        )
        result = await client.generate_object(prompt, list[Person])

    assert result.is_successful, result.error
    assert len(result.rounds) > 1
    assert result.finish_reasons[0] is FinishReason.MAX_TOKENS


@pytest.mark.asyncio
async def test_code_execution_text(gemini_api_key: str, gemini_test_model: str) -> None:
    async with Client(api_key=gemini_api_key, model=gemini_test_model) as client:
        prompt = client.create_prompt().add_text(
            "Use code execution to compute the sum of the first 50 primes."
        )
        result = await client.generate_text(prompt, TextTools(code_execution=True))

    assert result.is_successful, result.error
    assert result.text


@pytest.mark.asyncio
async def test_recursive_target_schema_is_accepted(
    gemini_api_key: str, gemini_test_model: str
) -> None:
    async with Client(api_key=gemini_api_key, model=gemini_test_model) as client:
        prompt = client.create_prompt().add_text(
            "Name a category of household goods. Leave parent null."
        )
        result = await client.generate_object(prompt, Category)

    assert result.is_successful, result.error
    assert result.data.name
