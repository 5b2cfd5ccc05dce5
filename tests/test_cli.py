import pytest
from click.testing import CliRunner

from cli import rhythm_cmd
from cli.rhythm_cmd import rhythm


@pytest.fixture
def run(tmp_path, monkeypatch):
    monkeypatch.setattr(rhythm_cmd, "setup_logging", lambda **kwargs: None)
    runner = CliRunner()

    def invoke(*args):
        return runner.invoke(rhythm, ["--data-dir", str(tmp_path), *args])

    return invoke


def test_add_and_status(run):
    result = run("add", "Write report", "-e", "30m", "-t", "deep")
    assert result.exit_code == 0
    assert "✅ Added Write report" in result.output

    status = run("status")
    assert status.exit_code == 0
    assert "1. ○ Write report  0m / 30m  #deep" in status.output
    assert "mode: Working" in status.output


def test_start_is_locked_outside_working(run):
    run("add", "Write")
    assert run("start", "1").exit_code == 0

    switched = run("mode", "lunch")
    assert "Working -> Lunch (paused 1, resumed 0)" in switched.output

    locked = run("start", "1")
    assert locked.exit_code == 1
    assert "❌" in locked.output

    back = run("mode", "working")
    assert "resumed 1" in back.output


def test_done_then_undo(run):
    run("add", "Write")
    assert run("done", "1").exit_code == 0
    assert "(no active tasks)" in run("status").output

    undo = run("undo")
    assert "↩️ Undid done of Write" in undo.output
    assert "Write" in run("status").output

    assert run("undo").exit_code == 1


def test_subtasks_estimate_and_move(run):
    run("add", "Write", "-e", "1")
    run("sub", "1", "Draft", "-e", "15m")
    run("sub", "1", "Edit", "-e", "15m")

    bumped = run("estimate", "2", "--up", "2")
    assert "Draft: estimate 45m" in bumped.output

    assert run("move", "2", "down").exit_code == 0
    lines = run("status").output.splitlines()
    assert "Edit" in lines[2] and "Draft" in lines[3]

    assert run("estimate", "2").exit_code != 0


def test_unknown_ref_fails(run):
    result = run("pause", "zzzz")
    assert result.exit_code == 1
    assert "❌" in result.output


def test_plan_and_report(run, tmp_path):
    run("add", "Write", "-e", "30m")

    plan = run("plan")
    assert plan.exit_code == 0
    assert "09:00  Write" in plan.output

    out = tmp_path / "copy.md"
    report = run("report", "--output", str(out))
    assert report.exit_code == 0
    assert out.read_text(encoding="utf-8").startswith("# Daily Report")


def test_notes_saves_edited_text(run, monkeypatch):
    run("add", "Write")
    monkeypatch.setattr(rhythm_cmd, "edit_notes", lambda text: "outline first")

    result = run("notes", "1")
    assert result.exit_code == 0
    assert "✅ Notes saved" in result.output

    monkeypatch.setattr(rhythm_cmd, "edit_notes", lambda text: rhythm_cmd.UNCHANGED)
    assert "Notes unchanged" in run("notes", "1").output


def test_journal_opens_the_editor_with_saved_text(run, monkeypatch, tmp_path):
    seen = []

    def fake_edit(text):
        seen.append(text)
        return "Deep work all morning."

    monkeypatch.setattr(rhythm_cmd, "edit_notes", fake_edit)

    assert "✅ Journal saved" in run("journal").output
    assert "✅ Journal saved" in run("journal").output
    assert seen == ["", "Deep work all morning."]
    assert [p.suffix for p in (tmp_path / "journal").iterdir()] == [".md"]

    tomorrow = run("journal", "--date", "2999-01-01")
    assert tomorrow.exit_code == 1
    assert "❌" in tomorrow.output
