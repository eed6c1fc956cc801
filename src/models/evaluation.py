"""Evaluation data models: gold question/answer pairs and the scored report.

Every score is a float in ``[0, 1]``.  ``overall`` is the weighted blend
0.3 relevance + 0.25 completeness + 0.25 accuracy + 0.2 citations.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.models.rag import QueryResult


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class QuestionCategory(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    FACTUAL = "factual"
    ANALYTICAL = "analytical"
    SUMMARY = "summary"
    SPECIFIC = "specific"
    GENERAL = "general"


class EvaluationPair(BaseModel):
    """One gold-standard question with the answer it should receive."""

    model_config = ConfigDict(frozen=True)

    id: str
    question: str
    expected_answer: str
    expected_citations: list[str] = Field(default_factory=list)
    category: QuestionCategory = QuestionCategory.GENERAL
    difficulty: str = "medium"
    expected_sources: list[str] = Field(
        default_factory=list,
        description="File names that should appear among the retrieved chunks; empty = not checked.",
    )


class EvaluationScores(BaseModel):
    model_config = ConfigDict(frozen=True)

    relevance: float = 0.0
    completeness: float = 0.0
    accuracy: float = 0.0
    citations: float = 0.0
    overall: float = 0.0


class EvaluationResult(BaseModel):
    """Outcome of asking one :class:`EvaluationPair`."""

    model_config = ConfigDict(frozen=True)

    pair: EvaluationPair
    result: QueryResult
    scores: EvaluationScores
    retrieval_hit: bool | None = None
    feedback: str
    timestamp: datetime = Field(default_factory=_utcnow)


class CategoryScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = 0
    average_score: float = 0.0


class EvaluationReport(BaseModel):
    """Aggregate over a full evaluation run."""

    model_config = ConfigDict(frozen=True)

    total_questions: int = 0
    successful_answers: int = Field(default=0, description="Results whose overall score exceeds 0.3.")
    average_scores: EvaluationScores = Field(default_factory=EvaluationScores)
    retrieval_hit_rate: float | None = Field(
        default=None,
        description="Share of pairs with expected sources whose sources were retrieved.",
    )
    category_breakdown: dict[str, CategoryScore] = Field(default_factory=dict)
    results: list[EvaluationResult] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)
