"""Answer-quality evaluation over a gold question/answer set.

:class:`EvaluationService` optionally ingests the built-in sample documents
through the job orchestrator, asks every question of the dataset through
:class:`~src.services.rag_service.RAGService`, and scores each answer with
the keyword heuristics below:

relevance
    Mean keyword overlap of the answer with the question and with the
    expected answer.  0 for the no-information and apology answers.
completeness
    Answer length against the expected answer's length: 1.0 inside
    70-130%, 0.7 inside 50-150%, 0.3 otherwise.
accuracy
    Keyword overlap with the expected answer plus small bonuses for
    numbers (factual questions) and for naming any expected keyword.
citations
    Rewards 2-4 citations, attached sources and ``[n]`` markers.

Scores are heuristics for comparing runs of the same pipeline, not an
absolute measure of correctness.
"""

from __future__ import annotations

import re
from collections import defaultdict

import structlog

from src.models.documents import UploadedFile
from src.models.evaluation import (
    CategoryScore,
    EvaluationPair,
    EvaluationReport,
    EvaluationResult,
    EvaluationScores,
    QuestionCategory,
)
from src.models.jobs import JobStatusView
from src.models.rag import QueryResult
from src.pipeline.job_orchestrator import JobOrchestrator
from src.services.answer_synthesizer import APOLOGY_ANSWER, NO_INFORMATION_ANSWER
from src.services.evaluation_dataset import EVALUATION_DATASET, SAMPLE_DOCUMENTS
from src.services.rag_service import RAGService
from src.utils.errors import CitebaseError

_STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
        "has", "had", "do", "does", "did", "will", "would", "could", "should",
    }
)
_CITATION_MARKER = re.compile(r"\[\d+\]")
_SUCCESS_THRESHOLD = 0.3

_WEIGHTS = {"relevance": 0.3, "completeness": 0.25, "accuracy": 0.25, "citations": 0.2}


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------


def extract_keywords(text: str) -> list[str]:
    """Lower-cased words longer than two characters, minus stop words."""
    cleaned = re.sub(r"[^\w\s]", "", text.lower())
    return [w for w in cleaned.split() if len(w) > 2 and w not in _STOP_WORDS]


def keyword_overlap(first: list[str], second: list[str]) -> float:
    """Shared distinct keywords over the larger distinct set; 0.0 if either is empty."""
    a, b = set(first), set(second)
    if not a or not b:
        return 0.0
    return len(a & b) / max(len(a), len(b))


def _is_error_answer(answer: str) -> bool:
    return not answer.strip() or answer == APOLOGY_ANSWER


def score_relevance(pair: EvaluationPair, answer: str) -> float:
    if _is_error_answer(answer) or answer == NO_INFORMATION_ANSWER:
        return 0.0
    answer_keywords = extract_keywords(answer)
    question_overlap = keyword_overlap(extract_keywords(pair.question), answer_keywords)
    expected_overlap = keyword_overlap(extract_keywords(pair.expected_answer), answer_keywords)
    return min(1.0, (question_overlap + expected_overlap) / 2)


def score_completeness(pair: EvaluationPair, answer: str) -> float:
    if _is_error_answer(answer):
        return 0.0
    ratio = len(answer) / max(len(pair.expected_answer), 1)
    if 0.7 <= ratio <= 1.3:
        return 1.0
    if 0.5 <= ratio <= 1.5:
        return 0.7
    return 0.3


def score_accuracy(pair: EvaluationPair, answer: str) -> float:
    if _is_error_answer(answer):
        return 0.0
    expected = extract_keywords(pair.expected_answer)
    score = keyword_overlap(expected, extract_keywords(answer))
    if pair.category is QuestionCategory.FACTUAL and re.search(r"\d", answer):
        score += 0.1
    lowered = answer.lower()
    if any(keyword in lowered for keyword in expected):
        score += 0.1
    return min(1.0, score)


def score_citations(result: QueryResult) -> float:
    count = len(result.citations)
    if count == 0:
        return 0.0
    score = 0.3
    if 2 <= count <= 4:
        score += 0.4
    elif count == 1:
        score += 0.2
    if result.sources:
        score += 0.2
    if _CITATION_MARKER.search(result.answer):
        score += 0.1
    return min(1.0, score)


def score_answer(pair: EvaluationPair, result: QueryResult) -> EvaluationScores:
    parts = {
        "relevance": score_relevance(pair, result.answer),
        "completeness": score_completeness(pair, result.answer),
        "accuracy": score_accuracy(pair, result.answer),
        "citations": score_citations(result),
    }
    overall = sum(parts[name] * weight for name, weight in _WEIGHTS.items())
    return EvaluationScores(**parts, overall=overall)


def _feedback(scores: EvaluationScores) -> str:
    if scores.overall >= 0.8:
        notes = ["Excellent: a high-quality answer with good citations."]
    elif scores.overall >= 0.6:
        notes = ["Good: the answer addresses the question adequately."]
    elif scores.overall >= 0.4:
        notes = ["Fair: the answer partially addresses the question."]
    else:
        notes = ["Poor: the answer does not adequately address the question."]
    if scores.relevance < 0.5:
        notes.append("Match the question's keywords and intent more closely.")
    if scores.completeness < 0.5:
        notes.append("The answer lacks completeness.")
    if scores.citations < 0.5:
        notes.append("Improve citation quality and source attribution.")
    return " ".join(notes)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class EvaluationService:
    """Runs the gold question set against the live pipeline.

    Parameters
    ----------
    rag_service:
        Answers the questions.
    orchestrator:
        Ingests the sample documents.
    dataset:
        Question/answer pairs; defaults to the built-in set.
    sample_documents:
        File name to text; defaults to the built-in sample documents.
    top_k, reranked_k:
        Retrieval breadth and the number of results kept for the answer.
    """

    def __init__(
        self,
        rag_service: RAGService,
        orchestrator: JobOrchestrator,
        dataset: list[EvaluationPair] | None = None,
        sample_documents: dict[str, str] | None = None,
        top_k: int = 10,
        reranked_k: int = 3,
    ) -> None:
        self._rag = rag_service
        self._orchestrator = orchestrator
        self._dataset = list(EVALUATION_DATASET if dataset is None else dataset)
        self._samples = dict(SAMPLE_DOCUMENTS if sample_documents is None else sample_documents)
        self._top_k = top_k
        self._reranked_k = reranked_k
        self._logger: structlog.BoundLogger = structlog.get_logger(logger_name=__name__)

    async def setup_sample_documents(self, timeout: float | None = None) -> JobStatusView:
        """Ingest the sample documents and wait for the job to finish.

        Documents already in the registry are skipped as duplicates.
        """
        files = [
            UploadedFile(name=name, size=len(text.encode("utf-8")), content=text)
            for name, text in self._samples.items()
        ]
        job_id = await self._orchestrator.create_job(files)
        job = await self._orchestrator.wait_for_job(job_id, timeout=timeout)
        self._logger.info(
            "evaluation_samples_ingested",
            status=job.status.value,
            chunks_indexed=job.metadata.chunks_indexed,
            duplicates=job.metadata.duplicates_skipped,
        )
        return job

    async def evaluate_pair(self, pair: EvaluationPair) -> EvaluationResult:
        """Ask one question and score the answer; errors score zero."""
        try:
            result = await self._rag.query(
                pair.question,
                use_mmr=True,
                use_reranking=True,
                top_k=self._top_k,
                reranked_k=self._reranked_k,
            )
        except CitebaseError as exc:
            self._logger.warning("evaluation_question_failed", pair_id=pair.id, error=exc.message)
            return EvaluationResult(
                pair=pair,
                result=QueryResult(query=pair.question, answer=APOLOGY_ANSWER),
                scores=EvaluationScores(),
                retrieval_hit=False if pair.expected_sources else None,
                feedback=f"Failed to process question: {exc.message}",
            )

        scores = score_answer(pair, result)
        hit: bool | None = None
        if pair.expected_sources:
            retrieved = {r.chunk.metadata.source for r in result.retrieval_results}
            hit = bool(retrieved & set(pair.expected_sources))
        return EvaluationResult(
            pair=pair,
            result=result,
            scores=scores,
            retrieval_hit=hit,
            feedback=_feedback(scores),
        )

    async def run(self, use_sample_documents: bool = True) -> EvaluationReport:
        """Evaluate every pair in order and aggregate the report."""
        self._logger.info("evaluation_started", questions=len(self._dataset))
        if use_sample_documents:
            await self.setup_sample_documents()

        results = [await self.evaluate_pair(pair) for pair in self._dataset]
        report = build_report(results)
        self._logger.info(
            "evaluation_complete",
            questions=report.total_questions,
            successful=report.successful_answers,
            overall=round(report.average_scores.overall, 3),
        )
        return report


def build_report(results: list[EvaluationResult]) -> EvaluationReport:
    """Average the scores, break them down by category and derive recommendations."""
    total = len(results)
    if total == 0:
        return EvaluationReport()

    def _mean(name: str) -> float:
        return sum(getattr(r.scores, name) for r in results) / total

    averages = EvaluationScores(
        relevance=_mean("relevance"),
        completeness=_mean("completeness"),
        accuracy=_mean("accuracy"),
        citations=_mean("citations"),
        overall=_mean("overall"),
    )
    successful = sum(1 for r in results if r.scores.overall > _SUCCESS_THRESHOLD)

    by_category: dict[str, list[float]] = defaultdict(list)
    for r in results:
        by_category[r.pair.category.value].append(r.scores.overall)
    breakdown = {
        category: CategoryScore(count=len(values), average_score=sum(values) / len(values))
        for category, values in by_category.items()
    }

    checked = [r.retrieval_hit for r in results if r.retrieval_hit is not None]
    hit_rate = sum(checked) / len(checked) if checked else None

    recommendations: list[str] = []
    if averages.overall < 0.6:
        recommendations.append("Overall performance needs improvement; tune retrieval and reranking parameters.")
    if averages.relevance < 0.5:
        recommendations.append("Improve retrieval relevance by adjusting the embedding model or search parameters.")
    if averages.citations < 0.5:
        recommendations.append("Strengthen citation generation and source attribution in the prompts.")
    if successful / total < 0.8:
        recommendations.append("Increase document coverage and improve no-answer detection.")
    if hit_rate is not None and hit_rate < 0.8:
        recommendations.append("Expected source documents are often missing from retrieval; revisit chunking.")

    return EvaluationReport(
        total_questions=total,
        successful_answers=successful,
        average_scores=averages,
        retrieval_hit_rate=hit_rate,
        category_breakdown=breakdown,
        results=results,
        recommendations=recommendations,
    )
