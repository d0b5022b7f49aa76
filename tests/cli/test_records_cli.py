from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path

import pytest

import watchstore.cli.records as records_cli


@pytest.fixture(autouse=True)
def quiet_logger(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(records_cli, "get_logger", lambda: logging.getLogger("watchstore"))


def test_lists_yaml_records(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (tmp_path / "b.yml").write_text("name: beta\nport: 2\n", encoding="utf-8")
    (tmp_path / "a.yml").write_text("name: alpha\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    rc = records_cli.main([str(tmp_path)])

    assert rc == 0
    out = capsys.readouterr().out.splitlines()
    assert out == ['a: {"name": "alpha"}', 'b: {"name": "beta", "port": 2}']


def test_lists_json_records(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (tmp_path / "one.json").write_text(json.dumps({"x": 1}), encoding="utf-8")

    rc = records_cli.main([str(tmp_path), "--format", "json"])

    assert rc == 0
    assert capsys.readouterr().out.strip() == 'one: {"x": 1}'


def test_empty_directory_message(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = records_cli.main([str(tmp_path)])

    assert rc == 0
    assert "No yaml records found" in capsys.readouterr().out


def test_missing_directory_is_reported_not_created(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    missing = tmp_path / "missing"

    rc = records_cli.main([str(missing)])

    assert rc == 1
    assert f"Directory not found: {missing}" in capsys.readouterr().out
    assert not missing.exists()


def test_broken_file_is_reported(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (tmp_path / "bad.yml").write_text("name: [oops\n", encoding="utf-8")

    records_cli.main([str(tmp_path)])

    assert "! Could not parse file bad.yml" in capsys.readouterr().out


def test_watch_prints_changes(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (tmp_path / "a.yml").write_text("name: alpha\n", encoding="utf-8")

    def edit() -> None:
        time.sleep(0.5)
        (tmp_path / "b.yml").write_text("name: beta\n", encoding="utf-8")

    editor = threading.Thread(target=edit)
    editor.start()
    rc = records_cli.main([str(tmp_path), "--watch", "--duration", "2.0"])
    editor.join()

    assert rc == 0
    out = capsys.readouterr().out
    assert 'a: {"name": "alpha"}' in out
    assert '+ b: {"name": "beta"}' in out


def test_format_change() -> None:
    assert records_cli._format_change("a", None, {"v": 1}) == '+ a: {"v": 1}'
    assert records_cli._format_change("a", {"v": 1}, None) == "- a"
    assert records_cli._format_change("a", {"v": 1}, {"v": 2}) == '~ a: {"v": 2}'


def test_parser_rejects_unknown_format() -> None:
    with pytest.raises(SystemExit):
        records_cli.build_parser().parse_args(["dir", "--format", "xml"])
