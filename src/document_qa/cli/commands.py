"""
CLI commands - thin wrappers around DocumentQAPipeline.

Each command follows the same pattern:
1. Parse arguments
2. Load environment
3. Call one pipeline operation
4. Print results
5. Return exit code

Note: the default in-memory store lives only as long as the process, so
`ingest` followed by `ask` in a separate invocation needs USE_POSTGRES=true.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from document_qa.core.errors import DocumentQAError


def _load_env() -> None:
    """Load environment variables from .env file."""
    from dotenv import load_dotenv

    load_dotenv()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _pipeline():
    from document_qa.observability import init_phoenix
    from document_qa.pipeline import build_pipeline

    init_phoenix()
    pipeline = build_pipeline()
    pipeline.store.create_schema()
    return pipeline


def run_ingest_cli(argv: list[str] | None = None) -> int:
    """CLI entry point for ingesting an extracted-text file."""
    parser = argparse.ArgumentParser(description="Chunk, embed and store a document")
    parser.add_argument("path", type=Path, help="UTF-8 text file with the extracted document text")
    parser.add_argument("--document-id", help="Document id (default: file stem)")
    parser.add_argument("--title", help="Document title (default: file name)")
    parser.add_argument("--strict", action="store_true", help="Fail if any embedding is missing")
    args = parser.parse_args(argv)

    try:
        text = args.path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: cannot read {args.path}: {e}", file=sys.stderr)
        return 2
    document_id = args.document_id or args.path.stem

    result = _pipeline().ingest(
        document_id, text, title=args.title or args.path.name, strict=args.strict
    )

    print(f"Document: {result.document_id}")
    print(f"Chunks created: {result.chunks_created}")
    print(f"Chunks embedded: {result.chunks_embedded}")
    print(f"Pages: {result.page_count}")
    if not result.complete:
        print(f"\nWARNING: {len(result.failed_chunk_ids)} chunks have no embedding.")
        print(f"Run: docqa backfill {result.document_id}")
    return 0


def run_ask_cli(argv: list[str] | None = None) -> int:
    """CLI entry point for asking a question."""
    parser = argparse.ArgumentParser(description="Ask a question about a document")
    parser.add_argument("query", help="Question text")
    parser.add_argument("--document-id", help="Restrict to one document (default: all)")
    parser.add_argument("-k", type=int, default=None, help="Chunks to retrieve")
    parser.add_argument("--threshold", type=float, default=None, help="Min similarity")
    parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    args = parser.parse_args(argv)

    result = _pipeline().ask(args.query, args.document_id, k=args.k, threshold=args.threshold)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    print(result.answer_text)
    if result.citations:
        print("\nSources:")
        for citation in result.citations:
            score = f" ({citation.similarity:.2f})" if citation.similarity is not None else ""
            print(f"  [p. {citation.page_number}] {citation.document_title}{score}")
            print(f"        {citation.snippet}")
    print(f"\nRetrieved chunks: {result.retrieved_count}")
    return 1 if result.degraded else 0


def run_search_cli(argv: list[str] | None = None) -> int:
    """CLI entry point for retrieval without generation."""
    from document_qa.synthesis import citations_from_results

    parser = argparse.ArgumentParser(description="Search document chunks")
    parser.add_argument("query", help="Search text")
    parser.add_argument("--document-id", help="Restrict to one document (default: all)")
    parser.add_argument("-k", type=int, default=None, help="Max results")
    parser.add_argument("--threshold", type=float, default=None, help="Min similarity")
    args = parser.parse_args(argv)

    results = _pipeline().search(args.query, args.document_id, k=args.k, threshold=args.threshold)

    for citation in citations_from_results(results):
        print(f"  [p. {citation.page_number}] {citation.similarity:.2f} {citation.snippet}")
    print(f"\nResults: {len(results)}")
    return 0


def run_backfill_cli(argv: list[str] | None = None) -> int:
    """CLI entry point for embedding chunks that are missing vectors."""
    parser = argparse.ArgumentParser(description="Generate missing chunk embeddings")
    parser.add_argument("document_id", help="Document to backfill")
    args = parser.parse_args(argv)

    processed = _pipeline().backfill_embeddings(args.document_id)
    print(f"Embedded {processed} chunks")
    return 0


def run_status_cli(argv: list[str] | None = None) -> int:
    """CLI entry point for a document's embedding coverage."""
    parser = argparse.ArgumentParser(description="Show embedding status")
    parser.add_argument("document_id", help="Document to inspect")
    args = parser.parse_args(argv)

    status = _pipeline().embedding_status(args.document_id)
    print(f"Document: {status.document_id}")
    print(f"Embedded: {status.embedded_chunks}/{status.total_chunks} "
          f"({status.completion_percentage}%)")
    print(f"Pending: {status.pending_chunks}")
    return 0 if status.is_complete else 1


def main() -> int:
    """
    Main CLI entry point with subcommands.

    Usage:
        docqa ingest notes.txt --title "Lecture 3"
        docqa ask "What is entropy?" --document-id notes
        docqa search "entropy" --document-id notes
        docqa backfill notes
        docqa status notes
    """
    _load_env()

    parser = argparse.ArgumentParser(
        description="Document question answering",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  ingest      Chunk, embed and store an extracted-text file
  ask         Answer a question with page citations
  search      Show matching chunks without generating an answer
  backfill    Embed chunks stored without a vector
  status      Show embedding coverage for a document
        """,
    )
    parser.add_argument(
        "command",
        choices=["ingest", "ask", "search", "backfill", "status"],
        help="Operation to run",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args, remaining = parser.parse_known_args()
    _configure_logging(args.verbose)

    commands = {
        "ingest": run_ingest_cli,
        "ask": run_ask_cli,
        "search": run_search_cli,
        "backfill": run_backfill_cli,
        "status": run_status_cli,
    }

    try:
        return commands[args.command](remaining)
    except DocumentQAError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
