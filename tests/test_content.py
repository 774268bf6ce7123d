"""Wire content tests: structural part dispatch and round-response parsing."""

from __future__ import annotations

import json

import pytest

from gemform.content import (
    CodeExecutionResult,
    ExecutableCode,
    ExecutableCodePart,
    ExecutableCodeResultPart,
    FinishReason,
    InlineData,
    InlineDataPart,
    Role,
    TextPart,
    Turn,
    copy_part,
    copy_turn,
    parse_round_response,
)
from gemform.errors import CloneError, MalformedResponseError
from tests.helpers import response

pytestmark = pytest.mark.contract


def test_parts_are_recognised_by_marker_field() -> None:
    body = {
        "candidates": [
            {
                "content": {
                    "role": "model",
                    "parts": [
                        {"text": "hello"},
                        {"inlineData": {"data": "aGk=", "mimeType": "text/plain"}},
                        {"executableCode": {"code": "print(1)", "language": "PYTHON"}},
                        {"codeExecutionResult": {"outcome": "OUTCOME_OK", "output": "1\n"}},
                    ],
                },
                "finishReason": "STOP",
            }
        ]
    }

    parsed = parse_round_response(json.dumps(body))
    parts = parsed.candidates[0].content.parts

    assert [type(p) for p in parts] == [
        TextPart,
        InlineDataPart,
        ExecutableCodePart,
        ExecutableCodeResultPart,
    ]
    assert parts[1].inline_data.mime_type == "text/plain"
    assert parts[3].executable_code_result.output == "1\n"


def test_turn_encodes_only_the_variant_fields() -> None:
    turn = Turn(
        role=Role.USER,
        parts=[
            TextPart(text="hi"),
            InlineDataPart(inline_data=InlineData(data="AA==", mime_type="image/png")),
            ExecutableCodeResultPart(
                executable_code_result=CodeExecutionResult(outcome="OUTCOME_OK")
            ),
        ],
    )

    assert turn.to_wire() == {
        "role": "user",
        "parts": [
            {"text": "hi"},
            {"inlineData": {"data": "AA==", "mimeType": "image/png"}},
            {"executableCodeResult": {"outcome": "OUTCOME_OK", "output": ""}},
        ],
    }


def test_round_response_fields_and_usage() -> None:
    parsed = parse_round_response(response("abc", "MAX_TOKENS", usage=(1, 2, 3)))

    assert parsed.model_version == "gemini-test"
    assert parsed.response_id == "resp-1"
    assert parsed.usage_metadata.prompt_token_count == 1
    assert parsed.usage_metadata.candidates_token_count == 2
    assert parsed.usage_metadata.total_token_count == 3
    assert parsed.last_finish_reason is FinishReason.MAX_TOKENS
    assert parsed.first_text == "abc"
    assert parsed.candidates[0].content.role is Role.MODEL


def test_missing_fields_default_sensibly() -> None:
    parsed = parse_round_response("{}")

    assert parsed.candidates == ()
    assert parsed.last_finish_reason is None
    assert parsed.first_text is None
    assert parsed.usage_metadata.total_token_count == 0


def test_candidate_without_role_is_a_model_turn() -> None:
    parsed = parse_round_response('{"candidates": [{"content": {"parts": [{"text": "x"}]}}]}')

    candidate = parsed.candidates[0]
    assert candidate.content.role is Role.MODEL
    assert candidate.finish_reason is FinishReason.UNSPECIFIED


def test_unknown_finish_reason_maps_to_other() -> None:
    parsed = parse_round_response(response("x", "SPII"))
    assert parsed.last_finish_reason is FinishReason.OTHER


def test_last_candidate_drives_finish_reason() -> None:
    body = {
        "candidates": [
            {"content": {"parts": [{"text": "a"}]}, "finishReason": "MAX_TOKENS"},
            {"content": {"parts": [{"text": "b"}]}, "finishReason": "STOP"},
        ]
    }
    parsed = parse_round_response(json.dumps(body))

    assert parsed.last_finish_reason is FinishReason.STOP
    assert parsed.first_text == "a"


@pytest.mark.parametrize(
    "body",
    [
        "not json",
        '{"candidates": [{"content": {"parts": [{"functionCall": {}}]}}]}',
        '{"candidates": "nope"}',
    ],
)
def test_malformed_bodies_raise_with_body_attached(body: str) -> None:
    with pytest.raises(MalformedResponseError) as exc:
        parse_round_response(body)

    assert exc.value.body == body


def test_copy_turn_is_structural() -> None:
    original = Turn(
        role=Role.MODEL,
        parts=[
            TextPart(text="t"),
            ExecutableCodePart(executable_code=ExecutableCode(code="x = 1")),
        ],
    )

    copied = copy_turn(original)
    copied.parts.append(TextPart(text="more"))

    assert copied.role is Role.MODEL
    assert copied.parts[:2] == original.parts
    assert copied.parts[0] is not original.parts[0]
    assert len(original.parts) == 2


def test_copy_part_rejects_unknown_variants() -> None:
    with pytest.raises(CloneError):
        copy_part({"text": "raw dict is not a part"})
