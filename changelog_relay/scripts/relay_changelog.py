#!/usr/bin/env python3
"""CLI entrypoint for parsing changelogs and relaying new entries."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import re
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import requests

from changelog_relay.changelog_parser import (
    adapter,
    diffing,
    git_source,
    globs,
    records,
    settings,
    splitter,
    webhook,
)
from changelog_relay.changelog_parser.model import Entry, SplitOutcome

logger = logging.getLogger("changelog_relay.cli")


def read_input(path: str | None) -> str:
    if path:
        try:
            return Path(path).expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            raise SystemExit(f"Error reading file: {exc}") from exc
    return sys.stdin.read()


def parse_extra(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Error parsing --extra JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise SystemExit("Error parsing --extra JSON: expected an object")
    return value


def log_outcome(outcome: SplitOutcome, label: str) -> None:
    if outcome.error:
        logger.warning("Parser fallback for %s due to error: %s", label, outcome.error)
    elif outcome.fell_back:
        logger.debug("Structured parser found no versions in %s; used splitter", label)


def command_parse(args: argparse.Namespace) -> None:
    extra = parse_extra(args.extra)
    content = read_input(args.file)
    if not content.strip():
        raise SystemExit("Error: No input provided\nUse --help for usage information")
    parser = adapter.select_structured_parser(args.structured_parser)
    outcome = asyncio.run(adapter.split_with_adapter(content, args.pattern, parser))
    log_outcome(outcome, args.file or "<stdin>")
    if not outcome.entries:
        raise SystemExit("Error: No changelog entries found")
    selected = outcome.entries if args.all else outcome.entries[:1]
    results = [records.build_record(entry, extra=extra) for entry in selected]
    print(records.render_records(results))


def command_diff(args: argparse.Namespace) -> None:
    extra = parse_extra(args.extra)
    before_text = read_input(args.before)
    after_text = read_input(args.after)
    entries = diffing.new_entries_from_snapshots(before_text, after_text, args.pattern)
    logger.info("%d new entries in %s", len(entries), args.after)
    results = [records.build_record(entry, extra=extra) for entry in entries]
    print(records.render_records(results))


async def collect_new_entries(
    config: settings.RelaySettings,
    rel_path: str,
    repo: Path,
    parser: adapter.StructuredParser,
) -> list[Entry]:
    if config.diff_mode == settings.DIFF_MODE_SNAPSHOT:
        before_text = git_source.read_file_at(config.before, rel_path, repo)
        after_text = git_source.read_file_at(config.after, rel_path, repo)
        entries = diffing.new_entries_from_snapshots(
            before_text, after_text, config.header_pattern
        )
    else:
        added = git_source.read_added_lines(config.before, config.after, rel_path, repo)
        if not added.strip():
            logger.info("No additions detected in %s", rel_path)
            return []
        logger.info("Processing additions from %s", rel_path)
        outcome = await diffing.new_entries_from_added_lines(
            added, config.header_pattern, parser
        )
        log_outcome(outcome, rel_path)
        entries = outcome.entries
    if not entries:
        logger.info("No new changelog entries found in %s", rel_path)
    return entries


def deliver(
    config: settings.RelaySettings,
    payload: Mapping[str, Any],
    session: requests.Session | None,
) -> bool:
    try:
        response = webhook.post_json(
            config.webhook_url,
            config.http_method,
            config.webhook_headers,
            payload,
            session=session,
        )
    except (webhook.WebhookError, requests.RequestException) as exc:
        logger.error("Failed to post entry: %s", exc)
        return False
    logger.info("Posted successfully: HTTP %d", response.status_code)
    return True


async def relay_changes(
    config: settings.RelaySettings,
    repo: Path,
    *,
    dry_run: bool = False,
    session: requests.Session | None = None,
) -> list[dict[str, Any]]:
    """Find new changelog entries between ``before`` and ``after`` and relay them.

    Returns the payloads that were delivered (or printed, for a dry run).
    """
    splitter.compile_header_pattern(config.header_pattern)
    parser = adapter.select_structured_parser(config.structured_parser)
    changed_files = git_source.read_changed_files(config.before, config.after, repo)
    changed = globs.filter_by_globs(changed_files, config.file_globs)
    if not changed:
        logger.info("No changed changelog files detected.")
        return []
    logger.info("Changed candidate files: %s", json.dumps(changed))

    delivered: list[dict[str, Any]] = []
    for rel_path in changed:
        if not (repo / rel_path).exists():
            logger.debug("Skipping %s: not present in the working tree", rel_path)
            continue
        for entry in await collect_new_entries(config, rel_path, repo, parser):
            payload = records.build_payload(
                entry,
                file_path=rel_path,
                before=config.before,
                after=config.after,
                project=config.project_context(),
                github=config.github_payload(),
                extra=config.extra_body,
                include_body_raw=config.include_body_raw,
            )
            if dry_run:
                print(json.dumps(payload, indent=2, ensure_ascii=False))
                delivered.append(payload)
                continue
            logger.info("Posting changelog entry from %s: %s", rel_path, entry.header)
            if deliver(config, payload, session):
                delivered.append(payload)
    return delivered


def command_notify(args: argparse.Namespace) -> None:
    config = settings.RelaySettings.from_env()
    if not config.webhook_url and not args.dry_run:
        raise SystemExit("WEBHOOK_URL is required")
    repo = Path(args.repo).expanduser().resolve()
    with requests.Session() as session:
        delivered = asyncio.run(
            relay_changes(config, repo, dry_run=args.dry_run, session=session)
        )
    logger.info("Relayed %d changelog entries", len(delivered))


def build_parser() -> argparse.ArgumentParser:
    parser_obj = argparse.ArgumentParser(
        description="Parse changelog entries and relay newly added ones"
    )
    parser_obj.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser_obj.add_subparsers(dest="command")

    parse_parser = subparsers.add_parser("parse", help="Parse the latest (or every) entry")
    parse_parser.add_argument("file", nargs="?", help="Changelog file (defaults to stdin)")
    parse_parser.add_argument("--all", action="store_true", help="Parse all entries")
    parse_parser.add_argument("--extra", help="JSON object merged into every record")
    parse_parser.add_argument(
        "--pattern",
        default=splitter.DEFAULT_HEADER_PATTERN,
        help="Entry separator regular expression",
    )
    parse_parser.add_argument(
        "--structured-parser",
        default="none",
        help="Structured parser to try first: 'markdown' or 'none'",
    )
    parse_parser.set_defaults(func=command_parse)

    diff_parser = subparsers.add_parser(
        "diff", help="List entries whose header is new in AFTER compared to BEFORE"
    )
    diff_parser.add_argument("before", help="Changelog before the change")
    diff_parser.add_argument("after", help="Changelog after the change")
    diff_parser.add_argument("--extra", help="JSON object merged into every record")
    diff_parser.add_argument(
        "--pattern",
        default=splitter.DEFAULT_HEADER_PATTERN,
        help="Entry separator regular expression",
    )
    diff_parser.set_defaults(func=command_diff)

    notify_parser = subparsers.add_parser(
        "notify", help="Post entries added between BEFORE and AFTER to WEBHOOK_URL"
    )
    notify_parser.add_argument("--repo", default=".", help="Git working tree to inspect")
    notify_parser.add_argument(
        "--dry-run", action="store_true", help="Print payloads instead of posting them"
    )
    notify_parser.set_defaults(func=command_notify)

    return parser_obj


def main(argv: list[str] | None = None) -> None:
    parser_obj = build_parser()
    args = parser_obj.parse_args(argv)
    if not getattr(args, "command", None):
        parser_obj.print_help()
        return
    settings.LoggingConfig(verbose=args.verbose).apply()
    try:
        args.func(args)
    except re.error as exc:
        raise SystemExit(f"Invalid entry separator pattern: {exc}") from exc
    except ValueError as exc:
        raise SystemExit(f"Error: {exc}") from exc


if __name__ == "__main__":
    main()
