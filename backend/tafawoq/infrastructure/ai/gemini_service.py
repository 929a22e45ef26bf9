"""
Gemini Content Generator for Tafawoq

Uses the google.genai SDK to generate Qudurat exam and practice questions
as structured JSON. The SDK call is blocking and runs in a worker thread;
the caller bounds it with a timeout.
"""

import asyncio
import json
import logging
import os
import time
from typing import Any, Dict, List, Optional
from uuid import uuid4

from google import genai
from google.genai import types
from pydantic import ValidationError as PydanticValidationError

from tafawoq.domain.content import (
    AcademicTrack,
    ContentKind,
    GeneratedContent,
    GenerationMetadata,
    GenerationRequest,
    Question,
    QuestionCategory,
    get_category_info,
)
from tafawoq.infrastructure.exceptions import (
    ConfigurationError,
    GenerationError,
    GenerationFailureKind,
)


logger = logging.getLogger(__name__)


# Load system prompt from file
SYSTEM_PROMPT_PATH = os.path.join(
    os.path.dirname(__file__),
    "SYSTEM_PROMPT.md"
)


def load_system_prompt() -> str:
    """Load the system prompt from the markdown file."""
    try:
        with open(SYSTEM_PROMPT_PATH, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        logger.warning(f"System prompt not found at {SYSTEM_PROMPT_PATH}")
        return "أنت مولد أسئلة اختبار القدرات السعودية. أجب بصيغة JSON فقط."


# Share of quantitative questions in a full exam, per academic track
QUANTITATIVE_SHARE = {
    AcademicTrack.SCIENTIFIC: 0.5,
    AcademicTrack.LITERARY: 0.3,
}


def exam_section_split(track: AcademicTrack, question_count: int) -> tuple[int, int]:
    """(verbal, quantitative) question counts for a full exam."""
    quantitative = round(question_count * QUANTITATIVE_SHARE[track])
    return question_count - quantitative, quantitative


def build_generation_prompt(request: GenerationRequest) -> str:
    """Render the user prompt for one generation request."""
    lines = ["## Request", f"- Number of questions: {request.question_count}"]

    if request.kind == ContentKind.EXAM:
        track = request.academic_track or AcademicTrack.SCIENTIFIC
        verbal, quantitative = exam_section_split(track, request.question_count)
        lines += [
            "- Type: full integrated Qudurat exam",
            f"- Academic track: {track.value}",
            f"- Verbal questions: {verbal} (spread over all verbal categories)",
            f"- Quantitative questions: {quantitative} (spread over all quantitative categories)",
            "- Difficulty: mixed easy / medium / hard",
        ]
    else:
        categories = ", ".join(
            f"{c.value} ({get_category_info(c).label})" for c in request.categories
        )
        lines += [
            "- Type: practice session",
            f"- Section: {request.section.value if request.section else 'mixed'}",
            f"- Categories (use only these): {categories}",
            f"- Difficulty: {request.difficulty.value if request.difficulty else 'medium'}",
        ]

    if request.include_explanations:
        lines.append("- Include a short step-by-step explanation for every question.")
    else:
        lines.append("- Set explanation to null.")

    return "\n".join(lines)


class GeminiContentGenerator:
    """
    Question generator backed by Gemini.

    Features:
    - Structured JSON output (response_mime_type=application/json)
    - Safety-block detection mapped to a content_filtered failure
    - Lenient item parsing: malformed items are dropped, not fatal
    """

    # Configuration
    DEFAULT_MODEL = "gemini-2.0-flash"
    MAX_OUTPUT_TOKENS = 32768
    TEMPERATURE = 0.8

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        client: Optional[genai.Client] = None,
    ):
        self._api_key = api_key
        self._model = model or self.DEFAULT_MODEL
        self._client = client
        self._system_prompt = load_system_prompt()

    @property
    def model(self) -> str:
        return self._model

    @property
    def client(self) -> genai.Client:
        """Get the Gemini client instance, creating it on first use."""
        if self._client is None:
            if not self._api_key:
                raise ConfigurationError(
                    "Missing GOOGLE_API_KEY environment variable",
                    missing_keys=["GOOGLE_API_KEY"]
                )
            self._client = genai.Client(api_key=self._api_key)
            logger.info(f"Gemini client initialized with model: {self._model}")
        return self._client

    async def generate(self, request: GenerationRequest) -> GeneratedContent:
        """
        Generate questions for a request.

        Args:
            request: Resolved generation request

        Returns:
            GeneratedContent with parsed questions and metadata

        Raises:
            GenerationError: content blocked or unusable output
            Exception: SDK/network errors, classified by the caller
        """
        prompt = build_generation_prompt(request)
        started = time.monotonic()

        response = await asyncio.to_thread(
            lambda: self.client.models.generate_content(
                model=self._model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    system_instruction=self._system_prompt,
                    temperature=self.TEMPERATURE,
                    max_output_tokens=self.MAX_OUTPUT_TOKENS,
                    response_mime_type="application/json",
                )
            )
        )

        self._raise_if_blocked(response)

        if not response.text:
            raise GenerationError(
                GenerationFailureKind.TRANSIENT,
                "Empty response from content generator",
            )

        payload = self._parse_json_response(response.text)
        questions = self._parse_questions(payload, request)

        if not questions:
            raise GenerationError(
                GenerationFailureKind.TRANSIENT,
                "Content generator returned no usable questions",
            )

        usage = getattr(response, "usage_metadata", None)
        metadata = GenerationMetadata(
            generation_time_ms=int((time.monotonic() - started) * 1000),
            model=self._model,
            token_count=getattr(usage, "total_token_count", None) if usage else None,
            image_count=sum(1 for q in questions if q.has_image),
        )

        logger.info(
            f"Generated {len(questions)}/{request.question_count} {request.kind.value} "
            f"questions in {metadata.generation_time_ms}ms"
        )
        return GeneratedContent(questions=questions, metadata=metadata)

    def _raise_if_blocked(self, response: Any) -> None:
        feedback = getattr(response, "prompt_feedback", None)
        if feedback is not None and getattr(feedback, "block_reason", None):
            raise GenerationError(
                GenerationFailureKind.CONTENT_FILTERED,
                f"Prompt blocked: {feedback.block_reason}",
            )

        candidates = getattr(response, "candidates", None) or []
        if candidates and getattr(candidates[0], "finish_reason", None) == types.FinishReason.SAFETY:
            raise GenerationError(
                GenerationFailureKind.CONTENT_FILTERED,
                "Generated content blocked by safety filters",
            )

    def _parse_json_response(self, response_text: str) -> Dict[str, Any]:
        """Parse JSON from response, handling markdown code blocks."""
        text = response_text.strip()

        # Remove markdown code blocks if present
        if text.startswith("```json"):
            text = text[7:]
        elif text.startswith("```"):
            text = text[3:]
        if text.endswith("```"):
            text = text[:-3]

        try:
            parsed = json.loads(text.strip())
        except json.JSONDecodeError as e:
            raise GenerationError(
                GenerationFailureKind.TRANSIENT,
                "Content generator returned malformed JSON",
                original_error=e,
            )

        if isinstance(parsed, list):
            return {"questions": parsed}
        if not isinstance(parsed, dict):
            raise GenerationError(
                GenerationFailureKind.TRANSIENT,
                "Content generator returned an unexpected payload",
            )
        return parsed

    def _parse_questions(
        self,
        payload: Dict[str, Any],
        request: GenerationRequest,
    ) -> List[Question]:
        allowed = set(request.categories) if request.kind == ContentKind.PRACTICE else None
        questions: List[Question] = []

        for raw in payload.get("questions") or []:
            if not isinstance(raw, dict):
                continue
            question = self._parse_question(raw)
            if question is None:
                continue
            if allowed is not None and question.category not in allowed:
                logger.debug(f"Dropping question outside requested categories: {question.category}")
                continue
            questions.append(question)

        return questions[: request.question_count]

    def _parse_question(self, raw: Dict[str, Any]) -> Optional[Question]:
        try:
            category = QuestionCategory(raw.get("category"))
            options = raw.get("options") or []
            # Tolerate bare-string options by assigning letter ids
            if options and all(isinstance(o, str) for o in options):
                options = [{"id": chr(ord("a") + i), "text": o} for i, o in enumerate(options)]

            # Every item belongs to the section of its category
            section = get_category_info(category).section
            if not raw.get("question_text"):
                raise ValueError("missing question_text")

            return Question(
                id=str(uuid4()),
                section=section,
                category=category,
                difficulty=raw.get("difficulty") or "medium",
                question_text=raw["question_text"],
                options=options,
                correct_answer=str(raw.get("correct_answer") or ""),
                explanation=raw.get("explanation") or None,
                image_url=raw.get("image_url") or None,
            )
        except (ValueError, PydanticValidationError) as e:
            logger.warning(f"Dropping malformed generated question: {e}")
            return None
