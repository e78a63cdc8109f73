import re
from unittest.mock import patch

import pytest

from bgm_exporter.cli import main
from bgm_exporter.errors import InvalidIndexError
from bgm_exporter.pipeline import ProcessReport


def test_cli_help_displays():
    """Test --help works without errors."""
    with patch("sys.argv", ["bgm-export", "--help"]):
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 0


def test_cli_process_help():
    with patch("sys.argv", ["bgm-export", "process", "--help"]):
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 0


def test_cli_export_modes_exclusive():
    with patch("sys.argv", ["bgm-export", "process", "--export-ogg", "a", "--export-mp3", "b"]):
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 2


def test_cli_check_command_ffmpeg_found(capsys):
    with patch("sys.argv", ["bgm-export", "check"]):
        with patch("bgm_exporter.cli.check_ffmpeg", return_value=True):
            main()
            captured = capsys.readouterr()
            assert "ffmpeg found" in captured.out.lower()


def test_cli_check_command_ffmpeg_not_found(capsys):
    with patch("sys.argv", ["bgm-export", "check"]):
        with patch("bgm_exporter.cli.check_ffmpeg", return_value=False):
            with pytest.raises(SystemExit) as exc_info:
                main()
            assert exc_info.value.code == 1
            assert "not found" in capsys.readouterr().out.lower()


def test_cli_process_passes_overrides(capsys):
    """Test CLI flags reach the pipeline as config overrides."""
    argv = [
        "bgm-export", "process", "--archive", "/data", "--index", "1", "3",
        "--workers", "2", "--export-ogg", "out",
    ]
    with patch("sys.argv", argv):
        with patch("bgm_exporter.pipeline.run_process", return_value=ProcessReport(resolved=2)) as run:
            main()

    cli_dict = run.call_args.args[0]
    assert cli_dict == {"archive": "/data", "index": [1, 3], "workers": 2, "export_ogg": "out"}
    assert re.search(r"Resolved:\s+2", capsys.readouterr().out)


def test_cli_process_error_exits_1(capsys):
    with patch("sys.argv", ["bgm-export", "process", "--index", "99"]):
        with patch("bgm_exporter.pipeline.run_process", side_effect=InvalidIndexError([99])):
            with pytest.raises(SystemExit) as exc_info:
                main()
    assert exc_info.value.code == 1
    assert "[99]" in capsys.readouterr().err


def test_cli_no_command_shows_help(capsys):
    with patch("sys.argv", ["bgm-export"]):
        main()
        assert "usage:" in capsys.readouterr().out.lower()


def test_cli_zero_workers_is_config_error(tmp_path, capsys):
    """Test invalid config values exit 1 with a message, not a traceback."""
    (tmp_path / "bgm.csv").write_text("music/a/one.scd,One\n")
    with patch("sys.argv", ["bgm-export", "process", "--archive", str(tmp_path), "--workers", "0"]):
        with pytest.raises(SystemExit) as exc_info:
            main()
    assert exc_info.value.code == 1
    assert "worker_count" in capsys.readouterr().err


def test_cli_sheet_writes_listing(tmp_path, capsys):
    (tmp_path / "bgm.csv").write_text("file,title\nmusic/a/one.scd,One\n,\n")
    output = tmp_path / "listing.csv"
    with patch("sys.argv", ["bgm-export", "sheet", str(output), "--archive", str(tmp_path)]):
        main()

    assert output.read_text().splitlines() == ["index,file,title", "0,music/a/one.scd,One", "1,,"]
    assert "2 rows" in capsys.readouterr().out


def test_cli_sheet_missing_archive(tmp_path, capsys):
    argv = ["bgm-export", "sheet", str(tmp_path / "out.csv"), "--archive", str(tmp_path / "nope")]
    with patch("sys.argv", argv):
        with pytest.raises(SystemExit) as exc_info:
            main()
    assert exc_info.value.code == 1
    assert "No archive" in capsys.readouterr().err
