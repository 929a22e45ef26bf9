"""
Content Domain Models

Exam and practice sessions, generated questions, generation criteria,
submissions, results and eligibility answers.
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from tafawoq.domain.subscription import SubscriptionTier


class ContentKind(str, Enum):
    """Kinds of generated content."""
    EXAM = "exam"
    PRACTICE = "practice"


class Section(str, Enum):
    """Test sections. MIXED is only valid as a practice filter."""
    VERBAL = "verbal"
    QUANTITATIVE = "quantitative"
    MIXED = "mixed"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class AcademicTrack(str, Enum):
    SCIENTIFIC = "scientific"
    LITERARY = "literary"


class SessionStatus(str, Enum):
    """Session lifecycle. Terminal states never change again."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self != SessionStatus.IN_PROGRESS


class QuestionCategory(str, Enum):
    """Question categories, in declaration order (used for tie-breaks)."""
    BASIC_OPERATIONS = "basic_operations"
    GEOMETRY = "geometry"
    ROOTS_EXPONENTS = "roots_exponents"
    ANALOGIES = "analogies"
    SENTENCE_COMPLETION = "sentence_completion"
    CONTEXTUAL_ERROR = "contextual_error"
    ODD_WORD_OUT = "odd_word_out"
    READING_COMPREHENSION = "reading_comprehension"


@dataclass(frozen=True)
class CategoryInfo:
    """Static metadata for one category."""
    id: QuestionCategory
    label: str
    section: Section


CATEGORIES = [
    CategoryInfo(QuestionCategory.BASIC_OPERATIONS, "العمليات الأساسية", Section.QUANTITATIVE),
    CategoryInfo(QuestionCategory.GEOMETRY, "الهندسة", Section.QUANTITATIVE),
    CategoryInfo(QuestionCategory.ROOTS_EXPONENTS, "الأسس والجذور", Section.QUANTITATIVE),
    CategoryInfo(QuestionCategory.ANALOGIES, "التناظر اللفظي", Section.VERBAL),
    CategoryInfo(QuestionCategory.SENTENCE_COMPLETION, "إكمال الجمل", Section.VERBAL),
    CategoryInfo(QuestionCategory.CONTEXTUAL_ERROR, "الخطأ السياقي", Section.VERBAL),
    CategoryInfo(QuestionCategory.ODD_WORD_OUT, "المفردة الشاذة", Section.VERBAL),
    CategoryInfo(QuestionCategory.READING_COMPREHENSION, "استيعاب المقروء", Section.VERBAL),
]

_CATEGORY_INFO = {info.id: info for info in CATEGORIES}
CATEGORY_ORDER = {info.id: index for index, info in enumerate(CATEGORIES)}


def get_category_info(category: QuestionCategory) -> CategoryInfo:
    return _CATEGORY_INFO[category]


def get_category_label(category: QuestionCategory) -> str:
    return _CATEGORY_INFO[category].label


def get_categories_by_section(section: Section) -> list[QuestionCategory]:
    """Categories of a section; MIXED returns all of them."""
    if section == Section.MIXED:
        return [info.id for info in CATEGORIES]
    return [info.id for info in CATEGORIES if info.section == section]


# =============================================================================
# Questions
# =============================================================================

class QuestionOption(BaseModel):
    id: str
    text: str


class Question(BaseModel):
    """One generated multiple-choice item."""
    id: str
    section: Section
    category: QuestionCategory
    difficulty: Difficulty
    question_text: str
    options: list[QuestionOption] = Field(min_length=2)
    correct_answer: str
    explanation: Optional[str] = None
    image_url: Optional[str] = None

    @model_validator(mode="after")
    def check_correct_answer(self) -> "Question":
        if self.correct_answer not in {option.id for option in self.options}:
            raise ValueError("correct_answer must reference one of the options")
        return self

    @property
    def has_image(self) -> bool:
        return bool(self.image_url)


class GenerationMetadata(BaseModel):
    """Bookkeeping returned by the content generator."""
    generation_time_ms: int = 0
    model: Optional[str] = None
    token_count: Optional[int] = None
    image_count: Optional[int] = None


class GeneratedContent(BaseModel):
    questions: list[Question]
    metadata: GenerationMetadata = Field(default_factory=GenerationMetadata)


# =============================================================================
# Criteria
# =============================================================================

class ExamCriteria(BaseModel):
    """Exam request body. The track defaults to the user's profile."""
    academic_track: Optional[AcademicTrack] = None


class PracticeCriteria(BaseModel):
    """Practice request body."""
    section: Section
    categories: list[QuestionCategory]
    difficulty: Difficulty = Difficulty.MEDIUM
    question_count: int = Field(description="Number of questions requested")


class GenerationRequest(BaseModel):
    """Fully resolved input handed to the content generator."""
    kind: ContentKind
    tier: SubscriptionTier
    question_count: int
    academic_track: Optional[AcademicTrack] = None
    section: Optional[Section] = None
    categories: list[QuestionCategory] = Field(default_factory=list)
    difficulty: Optional[Difficulty] = None
    include_explanations: bool = False


# =============================================================================
# Sessions / Results
# =============================================================================

class ContentSession(BaseModel):
    """An exam or practice session with its generated items."""
    id: Optional[str] = None
    user_id: str
    kind: ContentKind
    status: SessionStatus = SessionStatus.IN_PROGRESS
    started_at: datetime
    completed_at: Optional[datetime] = None
    question_count: int
    questions_answered: int = 0
    time_spent_seconds: int = 0
    section: Optional[Section] = None
    categories: list[QuestionCategory] = Field(default_factory=list)
    difficulty: Optional[Difficulty] = None
    academic_track: Optional[AcademicTrack] = None
    questions: list[Question] = Field(default_factory=list)
    generation_metadata: GenerationMetadata = Field(default_factory=GenerationMetadata)
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @model_validator(mode="after")
    def check_counts(self) -> "ContentSession":
        if self.questions_answered > self.question_count:
            raise ValueError("questions_answered cannot exceed question_count")
        if self.completed_at is not None and self.completed_at < self.started_at:
            raise ValueError("completed_at cannot precede started_at")
        return self


class QuestionAnswer(BaseModel):
    question_id: str
    answer: Optional[str] = Field(default=None, description="Selected option id; None if skipped")
    time_spent_seconds: int = Field(default=0, ge=0)


class SessionSubmission(BaseModel):
    """Answers for a session. Unlisted questions count as unanswered."""
    answers: list[QuestionAnswer]
    time_spent_seconds: int = Field(default=0, ge=0)


class CategoryPerformance(BaseModel):
    category: QuestionCategory
    label: str
    score: float
    questions_count: int
    correct_count: int


class ResultRecord(BaseModel):
    """Scored outcome of a submitted session. Written once, never mutated."""
    id: Optional[str] = None
    session_id: str
    user_id: str
    kind: ContentKind
    section_scores: dict[str, float] = Field(default_factory=dict)
    overall_score: float
    category_breakdown: dict[str, float] = Field(default_factory=dict)
    strengths: list[CategoryPerformance] = Field(default_factory=list)
    weaknesses: list[CategoryPerformance] = Field(default_factory=list)
    improvement_advice: str = ""
    answer_fingerprint: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def verbal_score(self) -> Optional[float]:
        return self.section_scores.get(Section.VERBAL.value)

    @property
    def quantitative_score(self) -> Optional[float]:
        return self.section_scores.get(Section.QUANTITATIVE.value)


def answer_fingerprint(answers: list[QuestionAnswer]) -> str:
    """SHA-256 over the sorted (question_id, answer) pairs of a submission."""
    digest = hashlib.sha256()
    for question_id, answer in sorted((a.question_id, a.answer or "") for a in answers):
        digest.update(f"{question_id}\x1f{answer}\x1e".encode("utf-8"))
    return digest.hexdigest()


# =============================================================================
# Eligibility
# =============================================================================

class Eligibility(BaseModel):
    """Answer to "may this user start this kind of session now"."""
    eligible: bool
    kind: ContentKind
    tier: SubscriptionTier
    reason: Optional[str] = None
    next_available_at: Optional[datetime] = None
    exams_taken_this_week: int = 0
    max_exams_per_week: Optional[int] = Field(default=None, description="None means unlimited")
    practice_question_limit: int


# =============================================================================
# Response DTOs
# =============================================================================

class QuestionView(BaseModel):
    """Question as shown to the client; answers hidden while in progress."""
    id: str
    section: Section
    category: QuestionCategory
    difficulty: Difficulty
    question_text: str
    options: list[QuestionOption]
    image_url: Optional[str] = None
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None


class SessionResponse(BaseModel):
    id: str
    kind: ContentKind
    status: SessionStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    question_count: int
    questions_answered: int
    time_spent_seconds: int
    section: Optional[Section] = None
    categories: list[QuestionCategory] = Field(default_factory=list)
    difficulty: Optional[Difficulty] = None
    academic_track: Optional[AcademicTrack] = None
    questions: list[QuestionView] = Field(default_factory=list)
    generation_metadata: GenerationMetadata


def build_session_response(session: ContentSession) -> SessionResponse:
    """Project a session for the client, revealing keys only once it is terminal."""
    reveal = session.status.is_terminal
    questions = [
        QuestionView(
            id=q.id,
            section=q.section,
            category=q.category,
            difficulty=q.difficulty,
            question_text=q.question_text,
            options=q.options,
            image_url=q.image_url,
            correct_answer=q.correct_answer if reveal else None,
            explanation=q.explanation if reveal else None,
        )
        for q in session.questions
    ]
    return SessionResponse(
        **session.model_dump(exclude={"questions", "user_id", "created_at", "id"}),
        id=session.id,
        questions=questions,
    )
