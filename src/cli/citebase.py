# =============================================================================
# src/cli/citebase.py -- Command-line interface
# =============================================================================
#
# Subcommands:
#
#   ingest -- extract text from files, submit one ingestion job, and print
#           its progress events until the job reaches a terminal state
#   query -- ask a question and print the cited answer
#   status -- print index statistics and the configuration in effect
#   evaluate -- ingest the sample documents, ask the gold questions, and
#           print the scored report
#
# Usage examples:
#   python -m src.cli ingest notes.md report.pdf
#   python -m src.cli query "What does the report conclude?" --top-k 5
#   python -m src.cli query "Summarize the notes" --no-rerank --stream
#   python -m src.cli status
#   python -m src.cli evaluate --json
# =============================================================================

"""citebase command-line interface.

Usage::

    python -m src.cli ingest FILE [FILE ...]
    python -m src.cli query "question" [--no-mmr] [--no-rerank] [--top-k N]
                                       [--reranked-k N] [--stream]
    python -m src.cli status
    python -m src.cli evaluate [--no-samples] [--json]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import mimetypes
import sys
from datetime import datetime, timezone
from pathlib import Path

from src.config.loader import load_settings
from src.main import Application, build_application
from src.models.documents import UploadedFile
from src.models.evaluation import EvaluationReport
from src.models.jobs import ProgressEvent
from src.models.rag import QueryResult
from src.utils.errors import CitebaseError
from src.utils.logging import configure_logging


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _read_files(app: Application, paths: list[str]) -> list[UploadedFile]:
    """Validate and extract each path; files that fail are reported and skipped."""
    files: list[UploadedFile] = []
    for raw in paths:
        path = Path(raw)
        try:
            if not path.is_file():
                print(f"  Skipping {raw}: not a file", file=sys.stderr)
                continue
            size = path.stat().st_size
            app.validator.validate_file(path.name, size)
            data = path.read_bytes()
            media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            text = await app.text_extractor.extract(data, path.name, media_type)
        except CitebaseError as exc:
            print(f"  Skipping {raw}: {exc.message}", file=sys.stderr)
            continue
        files.append(
            UploadedFile(
                name=path.name,
                size=size,
                media_type=media_type,
                content=text,
                last_modified=datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc),
            )
        )
    return files


async def _handle_ingest(args: argparse.Namespace, app: Application) -> int:
    files = await _read_files(app, args.files)
    if not files:
        print("Error: no readable files to ingest.", file=sys.stderr)
        return 1

    def _print_event(event: ProgressEvent) -> None:
        print(f"  [{event.progress:3d}%] {event.status.value:<10} {event.message}")

    app.progress_bus.subscribe("*", _print_event)
    print(f"Ingesting {len(files)} file(s)")
    job_id = await app.orchestrator.create_job(files)
    job = await app.orchestrator.wait_for_job(job_id)

    print("\nJob finished:")
    print(f"  Status:           {job.status.value}")
    print(f"  Chunks created:   {job.metadata.chunks_created}")
    print(f"  Chunks indexed:   {job.metadata.chunks_indexed}")
    print(f"  Duplicates:       {job.metadata.duplicates_skipped}")
    print(f"  Embedding errors: {job.metadata.embedding_failures}")
    if job.error is not None:
        print(f"  Error:            {job.error.kind}: {job.error.message}")
        return 1
    return 0


def _print_result(result: QueryResult) -> None:
    print(result.answer)
    if result.citations:
        print("\nCitations:")
        for citation in result.citations:
            where = f" / {citation.section}" if citation.section else ""
            print(f"  [{citation.id}] {citation.source}{where}")
    print(
        f"\n({result.metrics.total_time:.0f} ms total, "
        f"{result.metrics.tokens_used.total} tokens, "
        f"~${result.metrics.cost_estimate.total:.6f})"
    )


async def _handle_query(args: argparse.Namespace, app: Application) -> int:
    options = {
        "use_mmr": not args.no_mmr,
        "use_reranking": not args.no_rerank,
        "top_k": args.top_k,
        "reranked_k": args.reranked_k,
    }
    if not args.stream:
        _print_result(await app.rag_service.query(args.question, **options))
        return 0

    final: QueryResult | None = None
    async for item in app.rag_service.stream_query(args.question, **options):
        if isinstance(item, QueryResult):
            final = item
        else:
            print(item, end="", flush=True)
    print()
    if final is not None and final.citations:
        print("\nCitations:")
        for citation in final.citations:
            print(f"  [{citation.id}] {citation.source}")
    return 0


async def _handle_status(app: Application) -> int:
    status = await app.rag_service.system_status()
    print(json.dumps(status, indent=2, default=str))
    return 0 if status.get("status") == "operational" else 1


def _print_report(report: EvaluationReport) -> None:
    scores = report.average_scores
    print(f"Questions:          {report.total_questions}")
    print(f"Successful answers: {report.successful_answers}")
    if report.retrieval_hit_rate is not None:
        print(f"Retrieval hit rate: {report.retrieval_hit_rate:.0%}")
    print("\nAverage scores:")
    for name in ("relevance", "completeness", "accuracy", "citations", "overall"):
        print(f"  {name:<13} {getattr(scores, name):.2f}")
    print("\nBy category:")
    for category, summary in sorted(report.category_breakdown.items()):
        print(f"  {category:<13} {summary.average_score:.2f}  ({summary.count} question(s))")
    print("\nPer question:")
    for item in report.results:
        print(f"  {item.pair.id}  {item.scores.overall:.2f}  {item.feedback}")
    if report.recommendations:
        print("\nRecommendations:")
        for recommendation in report.recommendations:
            print(f"  - {recommendation}")


async def _handle_evaluate(args: argparse.Namespace, app: Application) -> int:
    report = await app.evaluation.run(use_sample_documents=not args.no_samples)
    if args.json:
        print(report.model_dump_json(indent=2))
    else:
        _print_report(report)
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Ingest documents into the citebase knowledge base and ask questions.",
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="YAML configuration file (default: config/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    ingest_parser = subparsers.add_parser("ingest", help="Ingest .txt, .md, .pdf or .docx files")
    ingest_parser.add_argument("files", nargs="+", help="Paths of the files to ingest")

    query_parser = subparsers.add_parser("query", help="Ask a question")
    query_parser.add_argument("question", help="The question to answer")
    query_parser.add_argument("--no-mmr", action="store_true", help="Plain similarity retrieval")
    query_parser.add_argument("--no-rerank", action="store_true", help="Skip the reranker")
    query_parser.add_argument("--top-k", type=int, default=None, help="Candidates to retrieve")
    query_parser.add_argument(
        "--reranked-k", type=int, default=None, help="Results passed to the answer"
    )
    query_parser.add_argument("--stream", action="store_true", help="Print the answer as it is generated")

    subparsers.add_parser("status", help="Show index statistics and configuration")

    evaluate_parser = subparsers.add_parser("evaluate", help="Score answers on the built-in question set")
    evaluate_parser.add_argument(
        "--no-samples", action="store_true", help="Skip ingesting the built-in sample documents"
    )
    evaluate_parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    return parser


async def _dispatch(args: argparse.Namespace, app: Application) -> int:
    try:
        if args.command == "ingest":
            return await _handle_ingest(args, app)
        if args.command == "query":
            return await _handle_query(args, app)
        if args.command == "evaluate":
            return await _handle_evaluate(args, app)
        return await _handle_status(app)
    finally:
        await app.aclose()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, build the application, and run one subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    try:
        settings = load_settings(args.config)
        # stdout carries command output only.
        configure_logging(
            log_level=settings.log_level,
            json_output=settings.app_env == "production",
            stream=sys.stderr,
        )
        app = build_application(settings)
        return asyncio.run(_dispatch(args, app))
    except CitebaseError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
