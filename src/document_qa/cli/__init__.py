"""
CLI module - `docqa` command-line interface.
"""

from document_qa.cli.commands import (
    main,
    run_ingest_cli,
    run_ask_cli,
    run_search_cli,
    run_backfill_cli,
    run_status_cli,
)

__all__ = [
    "main",
    "run_ingest_cli",
    "run_ask_cli",
    "run_search_cli",
    "run_backfill_cli",
    "run_status_cli",
]
