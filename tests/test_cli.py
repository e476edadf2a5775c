import json

import pytest

from lmc.cli import build_parser, main
from lmc.config import ENV_ALLOW_DUPLICATE_LABELS, ENV_DEBUG_MODE, ENV_PROMPT, Settings, load_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (ENV_DEBUG_MODE, ENV_PROMPT, ENV_ALLOW_DUPLICATE_LABELS):
        monkeypatch.delenv(name, raising=False)


def test_run_with_scripted_inputs(programs_dir, capsys):
    code = main(["run", str(programs_dir / "sum.lmc"), "-i", "3", "-i", "4"])
    out = capsys.readouterr().out
    assert code == 0
    assert out == "7\n"


def test_run_reports_emulation_error(tmp_path, capsys):
    source = tmp_path / "bad.lmc"
    source.write_text("INP\nOUT\nHLT\n", encoding="utf-8")
    code = main(["run", str(source), "--input", "1000"])
    captured = capsys.readouterr()
    assert code == 1
    assert captured.out == ""
    assert "error: Number out of range: 1000" in captured.err


def test_run_reports_assembly_error(tmp_path, capsys):
    source = tmp_path / "bad.lmc"
    source.write_text("BRA nowhere\n", encoding="utf-8")
    assert main(["run", str(source)]) == 1
    assert "Invalid label: nowhere" in capsys.readouterr().err


def test_run_missing_file(tmp_path, capsys):
    assert main(["run", str(tmp_path / "missing.lmc")]) == 1
    assert "Failed to read" in capsys.readouterr().err


def test_duplicate_labels_flag(tmp_path, capsys):
    source = tmp_path / "dup.lmc"
    source.write_text("LDA x\nOUT\nHLT\nx DAT 4\nx DAT 5\n", encoding="utf-8")
    assert main(["run", str(source)]) == 1
    assert "Duplicate label: x" in capsys.readouterr().err
    assert main(["--allow-duplicate-labels", "run", str(source)]) == 0
    assert capsys.readouterr().out == "4\n"
    assert main(["run", str(source), "--allow-duplicate-labels"]) == 0
    assert capsys.readouterr().out == "4\n"


def test_assemble_to_json_then_run_snapshot(programs_dir, tmp_path, capsys):
    image_path = tmp_path / "sum.json"
    assert main(["assemble", str(programs_dir / "sum.lmc"), "-o", str(image_path)]) == 0
    assert capsys.readouterr().out == ""

    data = json.loads(image_path.read_text(encoding="utf-8"))
    assert data["schema_version"] == 1
    assert data["pc"] == 0
    assert data["memory"][:7] == [901, 306, 901, 106, 902, 0, 0]

    assert main(["run", str(image_path), "-i", "10", "-i", "20"]) == 0
    assert capsys.readouterr().out == "30\n"

    assert main(["assemble", str(image_path)]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 100
    assert lines[1] == "01   306  STA 06"


def test_assemble_prints_listing_by_default(programs_dir, capsys):
    assert main(["assemble", str(programs_dir / "countdown.lmc")]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "00   901             INP"
    assert lines[1] == "01   902  loop       OUT"


def test_dump_state_after_run(programs_dir, tmp_path, capsys):
    snapshot = tmp_path / "final.json"
    code = main(["run", str(programs_dir / "sum.lmc"), "-i", "1", "-i", "2", "--dump-state", str(snapshot)])
    assert code == 0
    data = json.loads(snapshot.read_text(encoding="utf-8"))
    assert data["pc"] == -1
    assert data["acc"] == 3
    assert data["memory"][6] == 1


def test_dump_state_is_written_on_failure(tmp_path, capsys):
    source = tmp_path / "bad.lmc"
    source.write_text("INP\nHLT\n", encoding="utf-8")
    assert main(["run", str(source), "-i", "5000", "--dump-state", "-"]) == 1
    err = capsys.readouterr().err
    assert '"schema_version": 1' in err
    assert '"pc": 1' in err


def test_failed_dump_does_not_hide_run_error(tmp_path, capsys):
    source = tmp_path / "bad.lmc"
    source.write_text("INP\nHLT\n", encoding="utf-8")
    target = tmp_path / "no-such-dir" / "final.json"
    assert main(["run", str(source), "-i", "5000", "--dump-state", str(target)]) == 1
    err = capsys.readouterr().err
    assert "error: Number out of range: 5000" in err
    assert "Could not write state dump: Failed to write snapshot" in err
    assert not target.exists()


def test_failed_dump_after_clean_run_is_reported(programs_dir, tmp_path, capsys):
    target = tmp_path / "no-such-dir" / "final.json"
    code = main(["run", str(programs_dir / "sum.lmc"), "-i", "1", "-i", "2", "--dump-state", str(target)])
    captured = capsys.readouterr()
    assert code == 1
    assert captured.out == "3\n"
    assert "error: Failed to write snapshot" in captured.err


def test_usage_errors_exit_with_code_two(capsys):
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 2
    with pytest.raises(SystemExit) as exc:
        main(["run", "prog.lmc", "-i", "abc"])
    assert exc.value.code == 2


def test_parser_defaults():
    args = build_parser().parse_args(["run", "prog.lmc"])
    assert args.inputs == []
    assert args.trace is False
    assert args.debug is None
    assert args.allow_duplicate_labels is None


@pytest.mark.parametrize(
    "argv",
    [
        ["--debug", "--allow-duplicate-labels", "run", "prog.lmc"],
        ["run", "prog.lmc", "--debug", "--allow-duplicate-labels"],
        ["--debug", "run", "prog.lmc", "--allow-duplicate-labels"],
    ],
)
def test_common_flags_before_or_after_sub_command(argv):
    args = build_parser().parse_args(argv)
    assert args.debug is True
    assert args.allow_duplicate_labels is True


def test_debug_flag_after_sub_command_runs(programs_dir, capsys):
    code = main(["run", str(programs_dir / "sum.lmc"), "--debug", "-i", "3", "-i", "4"])
    captured = capsys.readouterr()
    assert code == 0
    assert captured.out == "7\n"
    assert "PC: " in captured.err


def test_load_settings_from_env_and_overrides():
    env = {ENV_DEBUG_MODE: "1", ENV_PROMPT: "? ", ENV_ALLOW_DUPLICATE_LABELS: "0"}
    settings = load_settings(env)
    assert settings == Settings(debug=True, prompt="? ", allow_duplicate_labels=False)

    settings = load_settings(env, debug=None, allow_duplicate_labels=True)
    assert settings.debug is True
    assert settings.allow_duplicate_labels is True

    assert load_settings({}) == Settings()
    assert load_settings({ENV_DEBUG_MODE: "true"}).debug is False
