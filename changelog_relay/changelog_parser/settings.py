"""Run configuration read from the environment and ``action.yml`` defaults."""
from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .splitter import DEFAULT_HEADER_PATTERN

logger = logging.getLogger(__name__)

DEFAULT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_ACTION_PATH = DEFAULT_ROOT / "action.yml"

DEFAULT_FILE_GLOBS = (
    "CHANGELOG.md,**/CHANGELOG.md,**/changelog.md,**/CHANGELOG*.md,**/changelog*.md"
)
DEFAULT_HTTP_METHOD = "POST"
DEFAULT_GITHUB_SERVER_URL = "https://github.com"

DIFF_MODE_ADDED_LINES = "added-lines"
DIFF_MODE_SNAPSHOT = "snapshot"
DIFF_MODES = {DIFF_MODE_ADDED_LINES, DIFF_MODE_SNAPSHOT}


def load_action_defaults(path: Path | None = None) -> dict[str, str]:
    """Collect ``inputs.<name>.default`` values from an action definition."""
    action_path = path or DEFAULT_ACTION_PATH
    defaults: dict[str, str] = {}
    if not action_path.exists():
        logger.debug("No action definition at %s; using built-in defaults", action_path)
        return defaults
    try:
        with action_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not load action defaults from %s: %s", action_path, exc)
        return defaults
    inputs = data.get("inputs") if isinstance(data, Mapping) else None
    if not isinstance(inputs, Mapping):
        return defaults
    for key, value in inputs.items():
        if isinstance(value, Mapping) and value.get("default") is not None:
            defaults[str(key)] = str(value["default"])
    return defaults


def parse_bool(value: str | None, default: bool) -> bool:
    if value is None or not str(value).strip():
        return default
    return str(value).strip().lower() == "true"


def parse_json_object(raw: str | None, label: str) -> dict[str, Any]:
    """Decode a JSON object setting; invalid input is logged and ignored."""
    if not raw or not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("Invalid %s. Using empty value. Error: %s", label, exc)
        return {}
    if not isinstance(value, dict):
        logger.warning("Invalid %s. Expected a JSON object, got %s", label, type(value).__name__)
        return {}
    return value


def _first(*values: str | None) -> str:
    for value in values:
        if value:
            return value
    return ""


@dataclass(frozen=True)
class LoggingConfig:
    verbose: bool = False
    format: str = "[%(levelname)s] %(message)s"

    @property
    def level(self) -> int:
        return logging.DEBUG if self.verbose else logging.INFO

    def apply(self) -> None:
        logging.basicConfig(level=self.level, format=self.format)


@dataclass(frozen=True)
class GithubContext:
    repository: str = ""
    repository_owner: str = ""
    ref: str = ""
    ref_name: str = ""
    workflow: str = ""
    actor: str = ""
    server_url: str = DEFAULT_GITHUB_SERVER_URL

    def to_payload(self) -> dict[str, str]:
        return {
            "repository": self.repository,
            "ref": self.ref,
            "refName": self.ref_name,
            "workflow": self.workflow,
            "actor": self.actor,
        }


@dataclass(frozen=True)
class RelaySettings:
    file_globs: str = DEFAULT_FILE_GLOBS
    header_pattern: str = DEFAULT_HEADER_PATTERN
    webhook_url: str = ""
    webhook_headers: Mapping[str, str] | None = None
    extra_body: Mapping[str, Any] | None = None
    http_method: str = DEFAULT_HTTP_METHOD
    include_body_raw: bool = False
    include_github_context: bool = True
    diff_mode: str = DIFF_MODE_ADDED_LINES
    structured_parser: str = "markdown"
    before: str = ""
    after: str = ""
    project_name: str = ""
    project_owner: str = ""
    repository_url: str = ""
    github: GithubContext = GithubContext()

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        defaults: Mapping[str, str] | None = None,
    ) -> RelaySettings:
        env = os.environ if environ is None else environ
        fallback = defaults if defaults is not None else load_action_defaults()
        github = GithubContext(
            repository=env.get("GITHUB_REPOSITORY", ""),
            repository_owner=env.get("GITHUB_REPOSITORY_OWNER", ""),
            ref=env.get("GITHUB_REF", ""),
            ref_name=env.get("GITHUB_REF_NAME", ""),
            workflow=env.get("GITHUB_WORKFLOW", ""),
            actor=env.get("GITHUB_ACTOR", ""),
            server_url=env.get("GITHUB_SERVER_URL") or DEFAULT_GITHUB_SERVER_URL,
        )
        repo_name = github.repository.split("/")[1] if "/" in github.repository else ""
        repo_url = (
            f"{github.server_url}/{github.repository}" if github.repository else ""
        )
        diff_mode = _first(
            env.get("DIFF_MODE"), fallback.get("diff_mode"), DIFF_MODE_ADDED_LINES
        ).strip().lower()
        if diff_mode not in DIFF_MODES:
            raise ValueError(
                f"Unknown DIFF_MODE {diff_mode!r} (expected one of: {', '.join(sorted(DIFF_MODES))})"
            )
        return cls(
            file_globs=_first(env.get("FILE_GLOBS"), fallback.get("file_globs"), DEFAULT_FILE_GLOBS),
            header_pattern=_first(
                env.get("ENTRY_SEPARATOR_REGEX"),
                fallback.get("entry_separator_regex"),
                DEFAULT_HEADER_PATTERN,
            ),
            webhook_url=env.get("WEBHOOK_URL", ""),
            webhook_headers=parse_json_object(
                env.get("WEBHOOK_HEADERS_JSON"), "WEBHOOK_HEADERS_JSON"
            ),
            extra_body=parse_json_object(env.get("EXTRA_BODY_JSON"), "EXTRA_BODY_JSON"),
            http_method=_first(
                env.get("HTTP_METHOD"), fallback.get("http_method"), DEFAULT_HTTP_METHOD
            ).upper(),
            include_body_raw=parse_bool(
                _first(env.get("INCLUDE_BODY_RAW"), fallback.get("include_body_raw")), False
            ),
            include_github_context=parse_bool(
                _first(
                    env.get("INCLUDE_GITHUB_CONTEXT"), fallback.get("include_github_context")
                ),
                True,
            ),
            diff_mode=diff_mode,
            structured_parser=_first(
                env.get("STRUCTURED_PARSER"), fallback.get("structured_parser"), "markdown"
            ),
            before=_first(env.get("BEFORE"), env.get("GITHUB_EVENT_BEFORE")),
            after=_first(env.get("AFTER"), env.get("GITHUB_SHA")),
            project_name=_first(env.get("PROJECT_NAME"), repo_name),
            project_owner=_first(env.get("PROJECT_OWNER"), github.repository_owner),
            repository_url=_first(env.get("REPOSITORY_URL"), repo_url),
            github=github,
        )

    def project_context(self) -> dict[str, str]:
        return {
            "project": self.project_name,
            "owner": self.project_owner,
            "repository": self.repository_url,
        }

    def github_payload(self) -> dict[str, str] | None:
        if not self.include_github_context:
            return None
        return self.github.to_payload()
