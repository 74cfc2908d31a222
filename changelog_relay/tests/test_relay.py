from __future__ import annotations

import asyncio
import io
import json
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any

import pytest
import requests

from changelog_relay.changelog_parser import adapter, git_source, settings
from changelog_relay.scripts import relay_changelog

FIXTURES = Path(__file__).resolve().parent / "fixtures"

INITIAL = "# Changelog\n\n## [1.0.0] - 2025-10-01\n\n### Added\n- Initial release\n"
UPDATED = (
    "# Changelog\n\n"
    "## [1.2.0] - 2025-10-17\n\n### Fixed\n- Timeout handling\n\n"
    "## [1.1.0] - 2025-10-10\n\n### Added\n- Webhook delivery\n\n"
    "## [1.0.0] - 2025-10-01\n\n### Added\n- Initial release\n- Backfilled note\n"
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


class FakeResponse:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        self.text = "ok" if status_code < 300 else "rejected"


class FakeSession:
    def __init__(self, statuses: list[int]) -> None:
        self.statuses = list(statuses)
        self.bodies: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.bodies.append(json.loads(kwargs["data"]))
        return FakeResponse(self.statuses.pop(0) if self.statuses else 200)


def _git(repo: Path, *args: str) -> str:
    env = {
        **os.environ,
        "GIT_AUTHOR_NAME": "Release Bot",
        "GIT_AUTHOR_EMAIL": "bot@example.test",
        "GIT_COMMITTER_NAME": "Release Bot",
        "GIT_COMMITTER_EMAIL": "bot@example.test",
    }
    completed = subprocess.run(
        ["git", "-c", "commit.gpgsign=false", *args],
        cwd=repo,
        env=env,
        capture_output=True,
        text=True,
        check=True,
    )
    return completed.stdout.strip()


@pytest.fixture()
def git_repo(tmp_path: Path) -> dict[str, Any]:
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    (repo / "CHANGELOG.md").write_text(INITIAL, encoding="utf-8")
    (repo / "README.md").write_text("# Widgets\n", encoding="utf-8")
    _git(repo, "add", ".")
    _git(repo, "commit", "-q", "-m", "initial")
    before = _git(repo, "rev-parse", "HEAD")
    (repo / "CHANGELOG.md").write_text(UPDATED, encoding="utf-8")
    (repo / "README.md").write_text("# Widgets\n\nNow with webhooks.\n", encoding="utf-8")
    _git(repo, "commit", "-q", "-am", "release 1.2.0")
    after = _git(repo, "rev-parse", "HEAD")
    return {"repo": repo, "before": before, "after": after}


def test_is_null_ref() -> None:
    assert git_source.is_null_ref(None)
    assert git_source.is_null_ref("")
    assert git_source.is_null_ref("0000000000000000000000000000000000000000")
    assert not git_source.is_null_ref("a1b2c3")


@requires_git
def test_read_changed_files(git_repo: dict[str, Any]) -> None:
    repo, before, after = git_repo["repo"], git_repo["before"], git_repo["after"]
    assert sorted(git_source.read_changed_files(before, after, repo)) == ["CHANGELOG.md", "README.md"]
    assert sorted(git_source.read_changed_files("0" * 40, after, repo)) == ["CHANGELOG.md", "README.md"]
    assert git_source.read_changed_files(before, "", repo) == []


@requires_git
def test_read_added_lines(git_repo: dict[str, Any]) -> None:
    repo, before, after = git_repo["repo"], git_repo["before"], git_repo["after"]
    added = git_source.read_added_lines(before, after, "CHANGELOG.md", repo)
    assert "## [1.2.0] - 2025-10-17" in added
    assert "## [1.1.0] - 2025-10-10" in added
    assert "- Backfilled note" in added
    assert "## [1.0.0] - 2025-10-01" not in added
    assert git_source.read_added_lines("", after, "CHANGELOG.md", repo) == UPDATED


@requires_git
def test_git_failures_degrade_to_empty(
    git_repo: dict[str, Any], caplog: pytest.LogCaptureFixture
) -> None:
    repo, after = git_repo["repo"], git_repo["after"]
    with caplog.at_level(logging.WARNING):
        assert git_source.read_changed_files("deadbeef", after, repo) == []
        assert git_source.read_added_lines("deadbeef", after, "CHANGELOG.md", repo) == ""
        assert git_source.read_file_at(after, "MISSING.md", repo) == ""
    assert "Failed to compute changed files" in caplog.text
    assert "Failed to get diff for CHANGELOG.md" in caplog.text


def test_missing_git_executable_degrades(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def missing(*args: Any, **kwargs: Any) -> Any:
        raise FileNotFoundError("git")

    monkeypatch.setattr(git_source.subprocess, "run", missing)
    assert git_source.read_changed_files("abc", "def", tmp_path) == []
    assert git_source.read_added_lines("abc", "def", "CHANGELOG.md", tmp_path) == ""
    assert git_source.read_file_at("def", "CHANGELOG.md", tmp_path) == ""


def _config(git_repo: dict[str, Any], **overrides: Any) -> settings.RelaySettings:
    values: dict[str, Any] = {
        "webhook_url": "https://hooks.example.test/changelog",
        "before": git_repo["before"],
        "after": git_repo["after"],
        "structured_parser": "none",
        "project_name": "widgets",
        "extra_body": {"channel": "releases"},
    }
    values.update(overrides)
    return settings.RelaySettings(**values)


@requires_git
def test_relay_added_lines_mode_posts_new_entries(git_repo: dict[str, Any]) -> None:
    session = FakeSession([200, 200])
    delivered = asyncio.run(
        relay_changelog.relay_changes(_config(git_repo), git_repo["repo"], session=session)  # type: ignore[arg-type]
    )
    headers = [payload["header"] for payload in delivered]
    assert headers == ["## [1.2.0] - 2025-10-17", "## [1.1.0] - 2025-10-10"]
    first = session.bodies[0]
    assert first["filePath"] == "CHANGELOG.md"
    assert first["version"] == "1.2.0"
    assert first["sections"]["Fixed"] == ["Timeout handling"]
    assert first["project"] == "widgets"
    assert first["channel"] == "releases"
    assert first["commit"] == {"before": git_repo["before"], "after": git_repo["after"]}
    assert "github" in first


@requires_git
def test_relay_snapshot_mode_matches_headers(git_repo: dict[str, Any]) -> None:
    session = FakeSession([])
    config = _config(git_repo, diff_mode=settings.DIFF_MODE_SNAPSHOT, include_github_context=False)
    delivered = asyncio.run(
        relay_changelog.relay_changes(config, git_repo["repo"], session=session)  # type: ignore[arg-type]
    )
    assert [payload["version"] for payload in delivered] == ["1.2.0", "1.1.0"]
    assert "github" not in session.bodies[0]


@requires_git
def test_relay_continues_after_failed_post(
    git_repo: dict[str, Any], caplog: pytest.LogCaptureFixture
) -> None:
    session = FakeSession([500, 200])
    with caplog.at_level(logging.INFO):
        delivered = asyncio.run(
            relay_changelog.relay_changes(_config(git_repo), git_repo["repo"], session=session)  # type: ignore[arg-type]
        )
    assert len(session.bodies) == 2
    assert [payload["version"] for payload in delivered] == ["1.1.0"]
    assert "Failed to post entry" in caplog.text


@requires_git
def test_relay_skips_when_no_changelog_changed(git_repo: dict[str, Any]) -> None:
    session = FakeSession([])
    config = _config(git_repo, file_globs="docs/**/NEWS.md")
    delivered = asyncio.run(
        relay_changelog.relay_changes(config, git_repo["repo"], session=session)  # type: ignore[arg-type]
    )
    assert delivered == []
    assert session.bodies == []


@requires_git
def test_relay_dry_run_prints_payloads(
    git_repo: dict[str, Any], capsys: pytest.CaptureFixture[str]
) -> None:
    config = _config(git_repo, structured_parser="markdown", include_body_raw=True)
    delivered = asyncio.run(relay_changelog.relay_changes(config, git_repo["repo"], dry_run=True))
    assert [payload["header"] for payload in delivered] == [
        "## [1.2.0] - 2025-10-17",
        "## [1.1.0] - 2025-10-10",
    ]
    assert delivered[0]["bodyRaw"].startswith("## [1.2.0] - 2025-10-17")
    assert "Timeout handling" in capsys.readouterr().out


def test_cli_parse_latest_entry(capsys: pytest.CaptureFixture[str]) -> None:
    relay_changelog.main(["parse", str(FIXTURES / "CHANGELOG.md")])
    result = json.loads(capsys.readouterr().out)
    assert result == {"header": "## [Unreleased]", "version": None, "date": None, "sections": {"root": []}}


def test_cli_parse_all_with_extra(capsys: pytest.CaptureFixture[str]) -> None:
    relay_changelog.main(
        ["parse", str(FIXTURES / "CONVENTIONAL-CHANGELOG.md"), "--all", "--extra", '{"project": "widgets"}']
    )
    result = json.loads(capsys.readouterr().out)
    assert [record["version"] for record in result] == ["4.2.4", "4.2.3"]
    assert all(record["project"] == "widgets" for record in result)
    assert result[1]["sections"]["Features"] == [
        "add retry support ([def5678](https://github.com/acme/widgets/commit/def5678))",
        "**cli:** accept a config path ([0a1b2c3](https://github.com/acme/widgets/commit/0a1b2c3))",
    ]


def test_cli_parse_reads_stdin(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("## 0.1.0 (2024-01-02)\n- First\n"))
    relay_changelog.main(["parse"])
    result = json.loads(capsys.readouterr().out)
    assert result["version"] == "0.1.0"
    assert result["date"] == "2024-01-02"
    assert result["sections"] == {"root": ["First"]}


def test_cli_parse_errors(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    with pytest.raises(SystemExit, match="Error reading file"):
        relay_changelog.main(["parse", str(tmp_path / "missing.md")])
    monkeypatch.setattr("sys.stdin", io.StringIO("   \n"))
    with pytest.raises(SystemExit, match="No input provided"):
        relay_changelog.main(["parse"])
    prose = tmp_path / "prose.md"
    prose.write_text("Nothing versioned here.\n", encoding="utf-8")
    with pytest.raises(SystemExit, match="No changelog entries found"):
        relay_changelog.main(["parse", str(prose)])
    with pytest.raises(SystemExit, match="--extra"):
        relay_changelog.main(["parse", str(prose), "--extra", "{oops"])
    with pytest.raises(SystemExit, match="Invalid entry separator pattern"):
        relay_changelog.main(["parse", str(prose), "--pattern", "(["])


def test_cli_diff_snapshot(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    before = tmp_path / "before.md"
    after = tmp_path / "after.md"
    before.write_text(INITIAL, encoding="utf-8")
    after.write_text(UPDATED, encoding="utf-8")
    relay_changelog.main(["diff", str(before), str(after)])
    result = json.loads(capsys.readouterr().out)
    assert [record["version"] for record in result] == ["1.2.0", "1.1.0"]

    relay_changelog.main(["diff", str(after), str(after)])
    assert json.loads(capsys.readouterr().out) == []


def test_cli_notify_requires_webhook(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("WEBHOOK_URL", raising=False)
    with pytest.raises(SystemExit, match="WEBHOOK_URL is required"):
        relay_changelog.main(["notify"])


def test_notify_shares_one_closed_session(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    seen: list[Any] = []

    async def fake_relay(config: Any, repo: Path, *, dry_run: bool = False, session: Any = None) -> list[Any]:
        seen.append(session)
        return []

    closed: list[bool] = []
    monkeypatch.setattr(relay_changelog, "relay_changes", fake_relay)
    monkeypatch.setattr(requests.Session, "close", lambda self: closed.append(True))
    monkeypatch.setenv("WEBHOOK_URL", "https://hooks.example.test/changelog")
    monkeypatch.delenv("DIFF_MODE", raising=False)
    relay_changelog.main(["notify", "--repo", str(tmp_path)])
    assert len(seen) == 1
    assert isinstance(seen[0], requests.Session)
    assert closed == [True]


def test_parser_failure_is_logged_and_splitter_entries_kept(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    def broken(text: str) -> dict[str, Any]:
        raise RuntimeError("boom")

    monkeypatch.setattr(
        relay_changelog.git_source,
        "read_added_lines",
        lambda before, after, path, cwd=None: "## [1.2.0] - 2025-10-17\n- Timeout handling\n",
    )
    config = settings.RelaySettings(before="abc", after="def")
    with caplog.at_level(logging.WARNING, logger="changelog_relay.cli"):
        entries = asyncio.run(
            relay_changelog.collect_new_entries(config, "CHANGELOG.md", tmp_path, adapter.Available(broken))
        )
    assert [entry.header for entry in entries] == ["## [1.2.0] - 2025-10-17"]
    assert "Parser fallback for CHANGELOG.md due to error: RuntimeError: boom" in caplog.text


def test_cli_parse_logs_structured_fallback(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], caplog: pytest.LogCaptureFixture
) -> None:
    def broken(text: str) -> dict[str, Any]:
        raise ValueError("unsupported layout")

    monkeypatch.setitem(adapter.STRUCTURED_PARSERS, "markdown", broken)
    with caplog.at_level(logging.WARNING, logger="changelog_relay.cli"):
        relay_changelog.main(
            ["parse", str(FIXTURES / "CONVENTIONAL-CHANGELOG.md"), "--structured-parser", "markdown"]
        )
    assert json.loads(capsys.readouterr().out)["version"] == "4.2.4"
    assert "due to error: ValueError: unsupported layout" in caplog.text
