# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import json
from pathlib import Path

import pytest

from iterator_item.driver import main as cli_main

GOOD = "pub fn* count_to(n: i32) yields i32 { for i in 0..n { yield i; } }\n"
BAD = """fn* bad() yields i32 {
	yield true;
	return 1;
}
"""


def _write_file(path: Path, text: str) -> Path:
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_text(text, encoding="utf-8")
	return path


def _run_json(argv: list[str], capsys: pytest.CaptureFixture[str]) -> tuple[int, dict]:
	rc = cli_main(argv + ["--json"])
	out = capsys.readouterr().out
	payload = json.loads(out) if out.strip() else {}
	return rc, payload


def test_output_file(tmp_path: Path) -> None:
	src = _write_file(tmp_path / "count.rs", GOOD)
	out = tmp_path / "count.py"
	assert cli_main([str(src), "-o", str(out)]) == 0
	code = out.read_text(encoding="utf-8")
	assert code.startswith("# Generated by iterator_item from count.rs. Do not edit.")
	assert "__all__ = ['count_to']" in code
	namespace: dict = {}
	exec(compile(code, str(out), "exec"), namespace)
	assert list(namespace["count_to"](3)) == [0, 1, 2]


def test_stdout_output_and_runtime_module(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
	src = _write_file(tmp_path / "count.rs", GOOD)
	assert cli_main([str(src), "--runtime-module", "my.rt", "--no-header"]) == 0
	out = capsys.readouterr().out
	assert out.startswith("from __future__ import annotations")
	assert "import my.rt as _rt" in out


def test_json_diagnostics(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
	src = _write_file(tmp_path / "bad.rs", BAD)
	rc, payload = _run_json([str(src)], capsys)
	assert rc == 1
	assert payload["exit_code"] == 1
	diags = payload["diagnostics"]
	assert [d["code"] for d in diags] == ["MultipleYieldedTypes", "NonUnitReturn"]
	first = diags[0]
	assert first["phase"] == "validate"
	assert first["severity"] == "error"
	assert first["file"] == str(src)
	assert (first["line"], first["column"]) == (2, 2)
	assert first["notes"] == ["`bad` is declared to yield `i32`"]


def test_json_success_is_clean(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
	src = _write_file(tmp_path / "count.rs", GOOD)
	rc, payload = _run_json([str(src)], capsys)
	assert rc == 0
	assert payload == {"exit_code": 0, "diagnostics": []}


def test_human_diagnostics_go_to_stderr(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
	src = _write_file(tmp_path / "bad.rs", BAD)
	assert cli_main([str(src), "--check"]) == 1
	captured = capsys.readouterr()
	assert captured.out == ""
	assert f"{src}:2:2: error: mismatched yielded type" in captured.err
	assert "  note: returning in an iterator is only meant for stopping the iterator" in captured.err


def test_out_dir_with_several_sources(tmp_path: Path) -> None:
	first = _write_file(tmp_path / "src" / "one.rs", GOOD)
	second = _write_file(tmp_path / "src" / "two-items.rs", "fn* two() yields u8 { yield 2; }\n")
	out_dir = tmp_path / "gen"
	assert cli_main([str(first), str(second), "--out-dir", str(out_dir)]) == 0
	assert sorted(p.name for p in out_dir.iterdir()) == ["one.py", "two_items.py"]


def test_any_error_writes_nothing(tmp_path: Path) -> None:
	good = _write_file(tmp_path / "good.rs", GOOD)
	bad = _write_file(tmp_path / "bad.rs", BAD)
	out_dir = tmp_path / "gen"
	assert cli_main([str(good), str(bad), "--out-dir", str(out_dir)]) == 1
	assert not out_dir.exists()


def test_missing_source(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
	rc, payload = _run_json([str(tmp_path / "nope.rs"), "--check"], capsys)
	assert rc == 1
	assert payload["diagnostics"][0]["phase"] == "driver"


def test_output_needs_a_single_source(tmp_path: Path) -> None:
	src = _write_file(tmp_path / "a.rs", GOOD)
	with pytest.raises(SystemExit):
		cli_main([str(src), str(src), "-o", str(tmp_path / "x.py")])


def test_undecodable_source_is_a_driver_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
	src = tmp_path / "latin1.rs"
	src.write_bytes(b"\xff\xfe fn* f() yields i32 { yield 1; }\n")
	rc, payload = _run_json([str(src), "--check"], capsys)
	assert rc == 1
	assert payload["exit_code"] == 1
	diag = payload["diagnostics"][0]
	assert diag["phase"] == "driver"
	assert "not valid UTF-8" in diag["message"]
