"""Tests for the defi-quiz command line.

Tests:
- generate writes an episode to stdout or a file
- generate reports bad snapshots and dates
- templates, matrix and schedule listings
- Missing subcommand prints help
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from defi_quiz.cli import main
from factories import protocol_snapshot


def _run(*argv):
    with patch("sys.argv", ["defi-quiz", *argv]):
        with pytest.raises(SystemExit) as exc_info:
            main()
    return exc_info.value.code


@pytest.fixture
def snapshot_file(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(protocol_snapshot()))
    return path


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


class TestGenerate:
    def test_stdout(self, snapshot_file, capsys):
        assert _run("generate", str(snapshot_file)) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["episode_id"] == "2024-06-03:protocol:aave"
        assert len(data["questions"]) == 5

    def test_output_file(self, snapshot_file, tmp_path, capsys):
        output = tmp_path / "out" / "episode.json"
        assert _run("generate", str(snapshot_file), "-o", str(output)) == 0
        out = capsys.readouterr().out
        assert "Episode 2024-06-03:protocol:aave: 5 questions" in out
        assert "Episode saved to" in out
        data = json.loads(output.read_text())
        assert [q["slot"] for q in data["questions"]] == ["A", "B", "C", "D", "E"]

    def test_missing_snapshot(self, tmp_path, capsys):
        assert _run("generate", str(tmp_path / "nope.json")) == 1
        assert "Snapshot not found" in capsys.readouterr().err

    def test_bad_date(self, snapshot_file, capsys):
        assert _run("generate", str(snapshot_file), "--date", "06/03/2024") == 1
        assert "Error:" in capsys.readouterr().err

    def test_bad_slots_dir(self, snapshot_file, tmp_path, capsys):
        assert _run("generate", str(snapshot_file), "--slots-dir", str(tmp_path)) == 1
        assert "Error:" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


class TestListings:
    def test_templates(self, capsys):
        assert _run("templates") == 0
        out = capsys.readouterr().out
        assert "P1_FINGERPRINT" in out
        assert "C1_FINGERPRINT" in out

    def test_templates_filtered(self, capsys):
        assert _run("templates", "--type", "chain") == 0
        out = capsys.readouterr().out
        assert "C11_TOP_PROTOCOL_TVL" in out
        assert "P1_FINGERPRINT" not in out

    @pytest.mark.parametrize("episode_type", ["protocol", "chain"])
    def test_matrix(self, episode_type, capsys):
        assert _run("matrix", "--type", episode_type) == 0
        out = capsys.readouterr().out
        assert f"{episode_type} slot matrix" in out
        assert "Matrix is valid" in out

    def test_matrix_missing_dir(self, tmp_path, capsys):
        assert _run("matrix", "--slots-dir", str(tmp_path)) == 1
        assert "Error:" in capsys.readouterr().err

    def test_schedule(self, capsys):
        assert _run("schedule", "2024-06-03", "--days", "2") == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("2024-06-03  Monday")
        assert lines[0].endswith("protocol")
        assert lines[1].endswith("chain")

    def test_schedule_bad_date(self, capsys):
        assert _run("schedule", "June 3rd") == 1
        assert "YYYY-MM-DD" in capsys.readouterr().err

    def test_no_command(self, capsys):
        assert _run() == 1
        assert "usage" in capsys.readouterr().out
