# src/main.py — v2
"""CLI entry point — generate, config, prompts commands.

Usage:
    docweaver generate --topic "..." [options]
    docweaver config show | set '<json patch>'
    docweaver prompts show [key] | set <key> <text> | reset
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from docweaver.version import __version__

if TYPE_CHECKING:
    from docweaver.config.settings import Settings

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    from docweaver.config.settings import ConfigurationError, load_settings

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="docweaver",
        description=f"docweaver v{__version__} — Multi-backend document generation pipeline",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- generate ---
    p_gen = subparsers.add_parser("generate", help="Generate a document from an intent")
    p_gen.add_argument("--topic", default=None, help="Document topic")
    p_gen.add_argument("--audience", default=None, help="Target audience")
    p_gen.add_argument("--style", default=None, help="Writing style")
    p_gen.add_argument(
        "--goal", dest="goals", action="append", default=[],
        help="Goal (repeatable)",
    )
    p_gen.add_argument(
        "--constraint", dest="constraints", action="append", default=[],
        help="Constraint (repeatable)",
    )
    p_gen.add_argument(
        "--reference", dest="references", action="append", default=[],
        help="Reference (repeatable)",
    )
    p_gen.add_argument(
        "--request", type=Path, default=None,
        help="JSON file with a full request body ({intent, files}); overrides flags",
    )
    p_gen.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Write the final markdown to this file (default: stdout)",
    )
    p_gen.add_argument(
        "--stream", action="store_true",
        help="Print progress events as JSON lines instead of the final document",
    )
    p_gen.set_defaults(func=_cmd_generate)

    # --- config ---
    p_cfg = subparsers.add_parser("config", help="Show or update backend configuration")
    cfg_sub = p_cfg.add_subparsers(dest="action", required=True)
    cfg_sub.add_parser("show", help="Print configuration (secrets masked)")
    p_cfg_set = cfg_sub.add_parser("set", help="Merge a JSON patch into the configuration")
    p_cfg_set.add_argument("patch", help="JSON object, e.g. '{\"concurrency\": 2}'")
    p_cfg.set_defaults(func=_cmd_config)

    # --- prompts ---
    p_pr = subparsers.add_parser("prompts", help="Show, update or reset prompt templates")
    pr_sub = p_pr.add_subparsers(dest="action", required=True)
    p_pr_show = pr_sub.add_parser("show", help="Print prompt templates")
    p_pr_show.add_argument("key", nargs="?", default=None, help="Single stage key")
    p_pr_set = pr_sub.add_parser("set", help="Replace one template")
    p_pr_set.add_argument("key", help="Stage key")
    p_pr_set.add_argument("text", help="Template text")
    pr_sub.add_parser("reset", help="Restore default templates")
    p_pr.set_defaults(func=_cmd_prompts)

    return parser


async def _cmd_generate(args: argparse.Namespace, settings: Settings) -> int:
    """Run the pipeline once."""
    from docweaver.api.facade import generate_document, stream_run
    from docweaver.api.models import GenerateRequest
    from docweaver.core.models import Intent

    if args.request is not None:
        if not args.request.exists():
            logger.error("Request file not found: %s", args.request)
            return 1
        request = GenerateRequest.model_validate_json(args.request.read_text(encoding="utf-8"))
    else:
        request = GenerateRequest(
            intent=Intent(
                topic=args.topic,
                audience=args.audience,
                style=args.style,
                goals=args.goals,
                constraints=args.constraints,
                references=args.references,
            )
        )

    if args.stream:
        async for event in stream_run(request, settings):
            print(json.dumps(event, ensure_ascii=False), flush=True)
            if event["type"] == "error":
                return 1
        return 0

    run = await generate_document(request, settings)
    markdown = run.final.markdown if run.final else ""
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(markdown, encoding="utf-8")
        commits = run.node("snapshot-commit")
        print(f"\nGeneration complete:")
        print(f"  Run ID:   {run.id}")
        print(f"  Nodes:    {len(run.nodes)}")
        print(f"  Commits:  {len((commits.data or {}).get('commits', [])) if commits else 0}")
        print(f"  Output:   {args.output}")
    else:
        print(markdown)
    return 0


async def _cmd_config(args: argparse.Namespace, settings: Settings) -> int:
    """Display or patch the backend configuration."""
    from pydantic import ValidationError

    from docweaver.config.app_config import ConfigStore

    store = ConfigStore(settings.config_file)
    if args.action == "set":
        try:
            patch = json.loads(args.patch)
        except ValueError as exc:
            logger.error("Patch is not valid JSON: %s", exc)
            return 1
        if not isinstance(patch, dict):
            logger.error("Patch must be a JSON object")
            return 1
        try:
            config = store.set_config(patch)
        except ValidationError as exc:
            logger.error("Invalid configuration patch: %s", exc)
            return 1
    else:
        config = store.get_config()
    print(json.dumps(config.masked(), ensure_ascii=False, indent=2))
    return 0


async def _cmd_prompts(args: argparse.Namespace, settings: Settings) -> int:
    """Display, update or reset prompt templates."""
    from docweaver.prompts.store import PromptStore

    store = PromptStore(settings.prompts_file)
    if args.action == "set":
        try:
            prompts = store.set_prompts({args.key: args.text})
        except ValueError as exc:
            logger.error("%s", exc)
            return 1
    elif args.action == "reset":
        prompts = store.reset_prompts()
    else:
        prompts = store.get_prompts()
        if args.key is not None:
            if args.key not in prompts:
                logger.error("Unknown prompt key: %s", args.key)
                return 1
            print(prompts[args.key])
            return 0
    print(json.dumps(prompts, ensure_ascii=False, indent=2))
    return 0


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from docweaver.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
