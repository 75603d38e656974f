"""Tests for the relaxed-planner CLI.

Each test works on its own data directory; planner data is seeded through
``import`` so the commands are exercised end to end over real files.
"""

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from relaxed_planner.app import PlannerApp
from relaxed_planner.cli import app
from relaxed_planner.constants import LOGGER_NAMESPACE

BACKUP = {
    "activities": [],
    "presets": [
        {
            "id": "p-calm",
            "name": "Calm Sunday",
            "mood": "slow",
            "createdAt": "2026-10-11T09:00:00.000Z",
            "activities": [
                {
                    "id": "a-walk",
                    "title": "Walk",
                    "startTime": "09:00",
                    "endTime": "10:00",
                    "category": "Leisure",
                    "color": "bg-green",
                    "points": 10,
                },
                {
                    "id": "a-read",
                    "title": "Read",
                    "startTime": "11:00",
                    "endTime": "11:30",
                    "category": "Learning",
                    "color": "bg-blue",
                    "points": 5,
                },
            ],
        }
    ],
    "totalPoints": 0,
    "dailyPoints": 0,
    "completedTasks": [],
    "lastSyncDate": None,
    "syncedActivities": [],
    "loadedPresetId": None,
    "lastActivityDate": None,
}


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def _reset_planner_logging() -> Iterator[None]:
    """Drop the stream handler bound to the runner's captured stderr."""
    yield
    planner_logger = logging.getLogger(LOGGER_NAMESPACE)
    for handler in list(planner_logger.handlers):
        handler.close()
    planner_logger.handlers.clear()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "planner"


@pytest.fixture
def invoke(cli_runner: CliRunner, data_dir: Path):
    """Run the CLI against the test data directory."""

    def run(*args: str, **kwargs):
        return cli_runner.invoke(app, ["--data-dir", str(data_dir), *args], **kwargs)

    return run


@pytest.fixture
def seeded(invoke, tmp_path: Path) -> None:
    backup = tmp_path / "seed.json"
    backup.write_text(json.dumps(BACKUP), encoding="utf-8")
    result = invoke("import", str(backup))
    assert result.exit_code == 0, result.output


class TestRoot:
    """Root callback and housekeeping commands."""

    def test_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "relaxed-planner" in result.output
        assert "version" in result.output

    def test_status_on_empty_data_dir(self, invoke, data_dir: Path) -> None:
        result = invoke("status")

        assert result.exit_code == 0, result.output
        assert "Presets: 0 (0 activities)" in result.output
        assert "not connected" in result.output
        assert (data_dir / "planner.db").exists()

    def test_status_after_import(self, invoke, seeded) -> None:
        result = invoke("status")

        assert result.exit_code == 0, result.output
        assert "Presets: 1 (2 activities)" in result.output
        assert "Total points: 0" in result.output


class TestExportImport:
    """Backup round trips through the CLI."""

    def test_export_writes_backup(self, invoke, seeded, tmp_path: Path) -> None:
        target = tmp_path / "out.json"

        result = invoke("export", str(target))

        assert result.exit_code == 0, result.output
        exported = json.loads(target.read_text(encoding="utf-8"))
        assert [p["id"] for p in exported["presets"]] == ["p-calm"]
        assert [a["id"] for a in exported["presets"][0]["activities"]] == ["a-walk", "a-read"]

    def test_import_rejects_invalid_backup(self, invoke, tmp_path: Path) -> None:
        backup = tmp_path / "bad.json"
        backup.write_text("[1, 2, 3]", encoding="utf-8")

        result = invoke("import", str(backup))

        assert result.exit_code == 1
        assert "not a valid planner backup" in result.output

    def test_import_missing_file(self, invoke, tmp_path: Path) -> None:
        result = invoke("import", str(tmp_path / "missing.json"))

        assert result.exit_code == 1
        assert "Could not read import file" in result.output


class TestClear:
    """Clearing planner data."""

    def test_clear_with_yes(self, invoke, seeded) -> None:
        result = invoke("clear", "--yes")

        assert result.exit_code == 0, result.output
        assert "All planner data cleared" in result.output
        assert "No presets saved yet." in invoke("presets", "list").output

    def test_clear_declined_keeps_data(self, invoke, seeded) -> None:
        result = invoke("clear", input="n\n")

        assert result.exit_code == 0
        assert "Nothing was cleared." in result.output
        assert "Calm Sunday" in invoke("presets", "list").output


class TestPresets:
    """Preset subcommands."""

    def test_list(self, invoke, seeded) -> None:
        result = invoke("presets", "list")

        assert result.exit_code == 0, result.output
        assert "p-calm" in result.output

    def test_list_empty(self, invoke) -> None:
        result = invoke("presets", "list")

        assert result.exit_code == 0
        assert "No presets saved yet." in result.output

    def test_show_lists_activities_in_order(self, invoke, seeded) -> None:
        result = invoke("presets", "show", "p-calm")

        assert result.exit_code == 0, result.output
        assert result.output.index("Walk") < result.output.index("Read")
        assert "09:00-10:00" in result.output

    def test_show_unknown(self, invoke, seeded) -> None:
        result = invoke("presets", "show", "nope")

        assert result.exit_code == 1
        assert "Preset not found: nope" in result.output

    def test_search(self, invoke, seeded) -> None:
        assert "p-calm" in invoke("presets", "search", "WALK").output
        assert "No presets match 'gym'." in invoke("presets", "search", "gym").output

    def test_delete(self, invoke, seeded) -> None:
        result = invoke("presets", "delete", "p-calm")

        assert result.exit_code == 0, result.output
        assert "Deleted preset p-calm" in result.output
        assert "No presets saved yet." in invoke("presets", "list").output

    def test_delete_unknown(self, invoke, seeded) -> None:
        result = invoke("presets", "delete", "nope")

        assert result.exit_code == 1
        assert "Preset not found: nope" in result.output


class TestCompletion:
    """complete, uncomplete and points."""

    def test_complete_awards_points_once(self, invoke, seeded) -> None:
        first = invoke("complete", "a-walk", "--preset", "p-calm", "--date", "2026-10-17")
        second = invoke("complete", "a-walk", "--preset", "p-calm", "--date", "2026-10-17")

        assert first.exit_code == 0, first.output
        assert "Completed 'Walk' (+10 points)" in first.output
        assert "already completed for Sat Oct 17 2026" in second.output
        assert "Total points: 10" in invoke("points").output

    def test_uncomplete_takes_points_back(self, invoke, seeded) -> None:
        invoke("complete", "a-walk", "--preset", "p-calm", "--date", "2026-10-17")
        invoke("complete", "a-read", "--preset", "p-calm", "--date", "2026-10-17")

        result = invoke("uncomplete", "a-walk", "--preset", "p-calm", "--date", "2026-10-17")

        assert result.exit_code == 0, result.output
        assert "Marked 'Walk' as not done (-10 points)" in result.output
        assert "Total points: 5" in invoke("points").output

    def test_uncomplete_when_not_completed(self, invoke, seeded) -> None:
        result = invoke("uncomplete", "a-read", "--preset", "p-calm", "--date", "2026-10-17")

        assert result.exit_code == 0
        assert "'Read' is not completed for Sat Oct 17 2026" in result.output

    def test_unknown_activity(self, invoke, seeded) -> None:
        result = invoke("complete", "a-swim", "--preset", "p-calm")

        assert result.exit_code == 1
        assert "Activity a-swim is not part of preset p-calm" in result.output

    def test_invalid_date(self, invoke, seeded) -> None:
        result = invoke("complete", "a-walk", "--preset", "p-calm", "--date", "17/10/2026")

        assert result.exit_code == 1
        assert "Invalid date '17/10/2026'" in result.output

    def test_points_recalculate(self, invoke, seeded) -> None:
        result = invoke("points", "--recalculate")

        assert result.exit_code == 0, result.output
        assert "Total points: 0" in result.output


class TestCalendar:
    """Calendar commands without stored credentials."""

    def test_test_when_disconnected(self, invoke) -> None:
        result = invoke("calendar", "test")

        assert result.exit_code == 1
        assert "Not connected to Google Calendar" in result.output

    def test_sync_when_disconnected(self, invoke, seeded) -> None:
        result = invoke("calendar", "sync", "--preset", "p-calm", "--date", "2026-10-17")

        assert result.exit_code == 1
        assert "Google Calendar is not connected." in result.output

    def test_connect_rejects_unreadable_token_file(self, invoke, tmp_path: Path) -> None:
        token_file = tmp_path / "token.json"
        token_file.write_text("{not json", encoding="utf-8")

        result = invoke("calendar", "connect", str(token_file))

        assert result.exit_code == 1
        assert "not a valid OAuth token response" in result.output

    def test_disconnect(self, invoke) -> None:
        result = invoke("calendar", "disconnect")

        assert result.exit_code == 0, result.output
        assert "Disconnected from Google Calendar" in result.output


class TestCalendarApiErrors:
    """API error text is printed as-is, square brackets included."""

    @pytest.fixture
    def google(self, monkeypatch: pytest.MonkeyPatch) -> dict[str, int]:
        """Route the calendar client through a mock transport.

        Returns the status codes the fake API answers with, keyed by
        ``calendarList`` and by event summary.
        """
        statuses: dict[str, int] = {}
        messages = {"calendarList": "[scope] missing", "Walk": "[quota] exceeded"}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/calendarList"):
                key = "calendarList"
            else:
                key = json.loads(request.content)["summary"]
            status = statuses.get(key, 200)
            if status != 200:
                return httpx.Response(status, json={"error": {"message": messages[key]}})
            if key == "calendarList":
                return httpx.Response(200, json={"items": [{"id": "me", "primary": True}]})
            return httpx.Response(200, json={"id": f"evt-{key}"})

        original = PlannerApp.from_data_dir

        def from_data_dir(cls, data_dir=None, config=None, **kwargs):
            return original(data_dir, config, transport=httpx.MockTransport(handler))

        monkeypatch.setattr(PlannerApp, "from_data_dir", classmethod(from_data_dir))
        return statuses

    @pytest.fixture
    def token_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "token.json"
        path.write_text(
            json.dumps({"access_token": "tok", "refresh_token": "r"}), encoding="utf-8"
        )
        return path

    def test_partial_sync_shows_bracketed_error(
        self, invoke, seeded, google: dict[str, int], token_file: Path
    ) -> None:
        assert invoke("calendar", "connect", str(token_file)).exit_code == 0
        google["Walk"] = 500

        result = invoke("calendar", "sync", "--preset", "p-calm", "--date", "2026-10-17")

        assert result.exit_code == 0, result.output
        assert "Walk: API error: 500 - [quota] exceeded" in result.output
        assert "Synced 1/2" in result.output

    def test_failed_connect_shows_bracketed_error(
        self, invoke, google: dict[str, int], token_file: Path
    ) -> None:
        google["calendarList"] = 403

        result = invoke("calendar", "connect", str(token_file))

        assert result.exit_code == 1
        assert "API error: 403 - [scope] missing" in result.output
