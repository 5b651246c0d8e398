from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from .config import AppConfig, load_config
from .drafting import LLMNoteDrafter, load_knowledge_base
from .errors import PartialWriteError, RfiWorkflowError
from .google_sheets import GoogleSheetsClient
from .llm_client import LLMClient
from .pipeline import RunContext, process_client_responses, process_testing_workbook

LOGGER = logging.getLogger("rfi_workflow")


def _load_env_files(config_path: Path) -> None:
    """Load environment variables from .env files."""

    # Load default .env in current working directory if present
    load_dotenv(override=False)

    # Load .env placed next to the config file if it exists
    config_env = config_path.parent / ".env"
    if config_env.exists():
        load_dotenv(dotenv_path=config_env, override=False)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Extract RFIs from audit workbooks and draft auditor notes for client responses"
    )
    parser.add_argument("--config", required=True, help="Path to the YAML configuration file")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    testing = subparsers.add_parser(
        "testing",
        help="Collect RFIs from the Testing sheet and create the client RFI workbook",
    )
    testing.add_argument("workbook_id", help="Spreadsheet ID of the audit workbook")
    testing.add_argument("--client", required=True, help="Client name used for the new workbook")
    testing.add_argument(
        "--folder", required=True, help="Drive folder ID that receives the client workbook"
    )

    responses = subparsers.add_parser(
        "responses",
        help="Draft auditor notes for the client responses in an RFI responses workbook",
    )
    responses.add_argument("workbook_id", help="Spreadsheet ID of the client responses workbook")
    responses.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not write notes to the sheet; print the drafted column to stdout instead",
    )

    files = subparsers.add_parser("files", help="List spreadsheets in a Drive folder")
    files.add_argument("folder_id", help="Drive folder ID")
    files.add_argument(
        "--pattern",
        default=None,
        help="Only list spreadsheets whose name contains this text (e.g. 'Testing')",
    )
    return parser.parse_args(argv)


def _run_testing(args: argparse.Namespace, ctx: RunContext) -> int:
    summary = process_testing_workbook(ctx, args.workbook_id, args.client, args.folder)
    if summary.client_workbook is None:
        LOGGER.info("No RFIs found; nothing written")
        return 0
    LOGGER.info(
        "Wrote %s general and %s specific issues; client workbook: %s",
        summary.general_count,
        summary.specific_count,
        GoogleSheetsClient.build_file_url(summary.client_workbook["id"]),
    )
    return 0


def _run_responses(args: argparse.Namespace, ctx: RunContext, config: AppConfig) -> int:
    if config.llm is None:
        LOGGER.error("The 'llm' section is required to draft auditor notes")
        return 2

    knowledge_base = []
    if config.drafting.knowledge_base_path is not None:
        knowledge_base = load_knowledge_base(config.drafting.knowledge_base_path)
        LOGGER.info("Loaded %s knowledge base entries", len(knowledge_base))

    drafter = LLMNoteDrafter(LLMClient(config.llm))
    summary = process_client_responses(
        ctx,
        args.workbook_id,
        drafter,
        knowledge_base,
        dry_run=args.dry_run,
    )
    if args.dry_run:
        output = {"range": summary.address, "values": summary.payload}
        print(json.dumps(output, ensure_ascii=False, indent=2))
    LOGGER.info("Completed drafting for %s responses", len(summary.records))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config_path = Path(args.config).expanduser().resolve()
    _load_env_files(config_path)
    config = load_config(config_path)
    sheets_client = GoogleSheetsClient(config.sheets)
    ctx = RunContext(sheets=sheets_client, config=config)

    try:
        if args.command == "files":
            files = sheets_client.list_files(args.folder_id, args.pattern)
            print(json.dumps(files, ensure_ascii=False, indent=2))
            return 0
        if args.command == "testing":
            return _run_testing(args, ctx)
        return _run_responses(args, ctx, config)
    except PartialWriteError as exc:
        LOGGER.error(
            "Sheet left partially updated; written: %s; failed: %s",
            ", ".join(exc.completed) or "none",
            ", ".join(exc.failures),
        )
        return 1
    except (RfiWorkflowError, RuntimeError, ValueError, OSError):
        LOGGER.exception("Processing failed")
        return 1


def run() -> None:
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
