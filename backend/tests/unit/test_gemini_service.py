"""
Unit tests for the Gemini content generator.

The google.genai client is mocked; tests cover prompt building, response
parsing and failure mapping.
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from tafawoq.domain.content import (
    AcademicTrack,
    ContentKind,
    Difficulty,
    GenerationRequest,
    QuestionCategory,
    Section,
)
from tafawoq.domain.subscription import SubscriptionTier
from tafawoq.infrastructure.ai.gemini_service import (
    GeminiContentGenerator,
    build_generation_prompt,
    exam_section_split,
)
from tafawoq.infrastructure.exceptions import (
    ConfigurationError,
    GenerationError,
    GenerationFailureKind,
)


def _response(text, block_reason=None, finish_reason=None, total_tokens=1234):
    return SimpleNamespace(
        text=text,
        prompt_feedback=SimpleNamespace(block_reason=block_reason) if block_reason else None,
        candidates=[SimpleNamespace(finish_reason=finish_reason)] if finish_reason else [],
        usage_metadata=SimpleNamespace(total_token_count=total_tokens),
    )


def _raw_question(category="geometry", **overrides):
    raw = {
        "category": category,
        "difficulty": "easy",
        "question_text": "ما مساحة المربع الذي طول ضلعه 3؟",
        "options": [
            {"id": "a", "text": "6"},
            {"id": "b", "text": "9"},
            {"id": "c", "text": "12"},
            {"id": "d", "text": "3"},
        ],
        "correct_answer": "b",
        "explanation": "3 × 3 = 9",
    }
    raw.update(overrides)
    return raw


@pytest.fixture
def mock_client():
    return MagicMock()


@pytest.fixture
def generator(mock_client):
    return GeminiContentGenerator(api_key="test-key", client=mock_client)


@pytest.fixture
def practice_request():
    return GenerationRequest(
        kind=ContentKind.PRACTICE,
        tier=SubscriptionTier.FREE,
        question_count=2,
        section=Section.QUANTITATIVE,
        categories=[QuestionCategory.GEOMETRY],
        difficulty=Difficulty.EASY,
    )


# =============================================================================
# Prompt Building
# =============================================================================

class TestPrompt:

    def test_exam_split_by_track(self):
        assert exam_section_split(AcademicTrack.SCIENTIFIC, 40) == (20, 20)
        assert exam_section_split(AcademicTrack.LITERARY, 40) == (28, 12)

    def test_exam_prompt(self):
        prompt = build_generation_prompt(GenerationRequest(
            kind=ContentKind.EXAM,
            tier=SubscriptionTier.PREMIUM,
            question_count=40,
            academic_track=AcademicTrack.LITERARY,
            include_explanations=True,
        ))

        assert "literary" in prompt
        assert "Verbal questions: 28" in prompt
        assert "explanation for every question" in prompt

    def test_practice_prompt_lists_categories(self, practice_request):
        prompt = build_generation_prompt(practice_request)

        assert "geometry" in prompt
        assert "Difficulty: easy" in prompt
        assert "Set explanation to null" in prompt


# =============================================================================
# Generation
# =============================================================================

class TestGenerate:

    async def test_parses_structured_response(self, generator, mock_client, practice_request):
        mock_client.models.generate_content.return_value = _response(
            json.dumps({"questions": [_raw_question(), _raw_question()]})
        )

        content = await generator.generate(practice_request)

        assert len(content.questions) == 2
        question = content.questions[0]
        assert question.section == Section.QUANTITATIVE
        assert question.correct_answer == "b"
        assert content.metadata.token_count == 1234
        assert content.metadata.model == GeminiContentGenerator.DEFAULT_MODEL

    async def test_fenced_json_and_bare_list(self, generator, mock_client, practice_request):
        mock_client.models.generate_content.return_value = _response(
            "```json\n" + json.dumps([_raw_question()]) + "\n```"
        )

        content = await generator.generate(practice_request)
        assert len(content.questions) == 1

    async def test_bare_string_options_get_letter_ids(self, generator, mock_client, practice_request):
        raw = _raw_question(options=["6", "9", "12", "3"], correct_answer="b")
        mock_client.models.generate_content.return_value = _response(json.dumps({"questions": [raw]}))

        content = await generator.generate(practice_request)

        assert [o.id for o in content.questions[0].options] == ["a", "b", "c", "d"]

    async def test_drops_malformed_and_off_category_items(self, generator, mock_client, practice_request):
        payload = {"questions": [
            _raw_question(),
            _raw_question(category="analogies"),
            _raw_question(correct_answer="z"),
            _raw_question(category="not_a_category"),
            "garbage",
        ]}
        mock_client.models.generate_content.return_value = _response(json.dumps(payload))

        content = await generator.generate(practice_request)

        assert len(content.questions) == 1
        assert content.questions[0].category == QuestionCategory.GEOMETRY

    async def test_truncates_to_requested_count(self, generator, mock_client, practice_request):
        payload = {"questions": [_raw_question() for _ in range(5)]}
        mock_client.models.generate_content.return_value = _response(json.dumps(payload))

        content = await generator.generate(practice_request)
        assert len(content.questions) == 2

    async def test_malformed_json_is_transient(self, generator, mock_client, practice_request):
        mock_client.models.generate_content.return_value = _response("{not json")

        with pytest.raises(GenerationError) as exc_info:
            await generator.generate(practice_request)
        assert exc_info.value.kind == GenerationFailureKind.TRANSIENT

    async def test_no_usable_questions_is_transient(self, generator, mock_client, practice_request):
        mock_client.models.generate_content.return_value = _response(json.dumps({"questions": []}))

        with pytest.raises(GenerationError) as exc_info:
            await generator.generate(practice_request)
        assert exc_info.value.kind == GenerationFailureKind.TRANSIENT

    async def test_blocked_prompt_is_content_filtered(self, generator, mock_client, practice_request):
        mock_client.models.generate_content.return_value = _response(None, block_reason="SAFETY")

        with pytest.raises(GenerationError) as exc_info:
            await generator.generate(practice_request)
        assert exc_info.value.kind == GenerationFailureKind.CONTENT_FILTERED

    async def test_sdk_errors_propagate_unclassified(self, generator, mock_client, practice_request):
        mock_client.models.generate_content.side_effect = RuntimeError("socket closed")

        with pytest.raises(RuntimeError):
            await generator.generate(practice_request)


class TestClientSetup:

    def test_missing_api_key(self):
        generator = GeminiContentGenerator(api_key=None)
        with pytest.raises(ConfigurationError):
            _ = generator.client

    def test_custom_model(self, mock_client):
        generator = GeminiContentGenerator(api_key="k", model="gemini-2.5-pro", client=mock_client)
        assert generator.model == "gemini-2.5-pro"
