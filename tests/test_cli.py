"""Tests for the `sizecache` command line."""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path

import pytest

import sizecache.cli
from sizecache.sizing import estimate_size


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_parse_demo_defaults() -> None:
    ns = sizecache.cli.parse_args(["demo"])
    assert ns.command == "demo"
    assert ns.count == 1000
    assert ns.limit is None
    assert ns.value_type == "int"
    assert ns.json_output is False
    assert ns.verbose is False


def test_parse_estimate_flags() -> None:
    ns = sizecache.cli.parse_args(["-v", "estimate", "data.json", "--json", "--root", "/tmp"])
    assert ns.command == "estimate"
    assert ns.path == "data.json"
    assert ns.json_output is True
    assert ns.root == "/tmp"
    assert ns.verbose is True


def test_main_dispatches_demo(monkeypatch) -> None:
    monkeypatch.setattr(sizecache.cli, "cmd_demo", lambda args: 0)
    assert sizecache.cli.main(["demo"]) == 0


def test_version_exits_cleanly(capsys) -> None:
    assert sizecache.cli.main(["--version"]) == 0
    assert "sizecache" in capsys.readouterr().out


def test_unknown_command_is_a_usage_error() -> None:
    assert sizecache.cli.main(["nope"]) == sizecache.cli.EXIT_CONFIG_OR_USAGE


def test_verbose_configures_debug_logging(monkeypatch, tmp_path: Path) -> None:
    calls: list[dict[str, object]] = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))

    code = sizecache.cli.main(["-v", "demo", "--count", "0", "--root", str(tmp_path)])
    assert code == 0
    assert calls and calls[0]["level"] == logging.DEBUG


# --- demo ---


def test_demo_prints_data_size_per_insert(tmp_path: Path, capsys) -> None:
    code = sizecache.cli.main(["demo", "--count", "3", "--root", str(tmp_path)])
    assert code == 0

    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 3
    assert lines[0].startswith("[0], dataSize: ")
    assert lines[2].startswith("[2], dataSize: ")


def test_demo_json_summary_accounts_evictions(tmp_path: Path, capsys) -> None:
    code = sizecache.cli.main(
        ["demo", "--count", "10", "--limit", "0", "--json", "--root", str(tmp_path)]
    )
    assert code == 0

    out = json.loads(capsys.readouterr().out)
    assert out["inserted"] == 10
    assert out["entries"] == 1
    assert out["limit_bytes"] == 0
    assert out["evicted_bytes"] == sum(estimate_size(i) for i in range(9))


def test_demo_reads_limit_from_config(tmp_path: Path, capsys) -> None:
    cfg = _write(tmp_path / "sizecache.toml", "version = 1\n[cache]\nlimit_bytes = 0\n")

    code = sizecache.cli.main(["demo", "--count", "2", "--json", "--config", str(cfg)])
    assert code == 0
    assert json.loads(capsys.readouterr().out)["limit_bytes"] == 0


def test_demo_finds_config_from_cwd(tmp_path: Path, monkeypatch, capsys) -> None:
    _write(tmp_path / "sizecache.toml", "version = 1\n[cache]\nlimit_bytes = 12345\n")
    nested = tmp_path / "sub"
    nested.mkdir()
    monkeypatch.chdir(nested)

    assert sizecache.cli.main(["demo", "--count", "1", "--json"]) == 0
    assert json.loads(capsys.readouterr().out)["limit_bytes"] == 12345


def test_demo_with_function_values_fails_construction(tmp_path: Path, capsys) -> None:
    code = sizecache.cli.main(
        ["demo", "--value-type", "function", "--count", "1", "--root", str(tmp_path)]
    )
    assert code == sizecache.cli.EXIT_UNSUPPORTED_KIND

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "unsupported kind: function" in captured.err
    assert "hint:" in captured.err


@pytest.mark.parametrize("value_type", ["str", "bytes", "list", "dict"])
def test_demo_supports_other_value_types(tmp_path: Path, capsys, value_type: str) -> None:
    code = sizecache.cli.main(
        ["demo", "--value-type", value_type, "--count", "5", "--json", "--root", str(tmp_path)]
    )
    assert code == 0
    assert json.loads(capsys.readouterr().out)["entries"] == 5


def test_demo_rejects_negative_count(tmp_path: Path, capsys) -> None:
    code = sizecache.cli.main(["demo", "--count", "-1", "--root", str(tmp_path)])
    assert code == sizecache.cli.EXIT_CONFIG_OR_USAGE
    assert "--count" in capsys.readouterr().err


def test_demo_reports_invalid_config(tmp_path: Path, capsys) -> None:
    cfg = _write(tmp_path / "sizecache.toml", "version = 2\n")

    code = sizecache.cli.main(["demo", "--config", str(cfg)])
    assert code == sizecache.cli.EXIT_CONFIG_OR_USAGE
    assert "error: Unsupported config version" in capsys.readouterr().err


# --- estimate ---


def test_estimate_prints_size_of_json_file(tmp_path: Path, capsys) -> None:
    text = '{"a": [1, 2, "x"], "b": {"c": null}}'
    path = _write(tmp_path / "data.json", text)

    code = sizecache.cli.main(["estimate", str(path), "--root", str(tmp_path)])
    assert code == 0
    assert capsys.readouterr().out.strip() == str(estimate_size(json.loads(text)))


def test_estimate_reads_stdin_and_prints_json(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("[1, 2]"))

    code = sizecache.cli.main(["estimate", "-", "--json", "--root", str(tmp_path)])
    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert out == {"path": "-", "size_bytes": estimate_size(json.loads("[1, 2]"))}


def test_estimate_uses_configured_constants(tmp_path: Path, capsys) -> None:
    _write(tmp_path / "sizecache.toml", "version = 1\n[estimator]\nmap_entry_overhead = 0\n")
    path = _write(tmp_path / "data.json", '{"a": 1}')

    code = sizecache.cli.main(["estimate", str(path), "--root", str(tmp_path)])
    assert code == 0
    expected = estimate_size(json.loads('{"a": 1}')) - int(10.79)
    assert int(capsys.readouterr().out) == expected


def test_estimate_missing_file(tmp_path: Path, capsys) -> None:
    code = sizecache.cli.main(["estimate", str(tmp_path / "nope.json")])
    assert code == sizecache.cli.EXIT_CONFIG_OR_USAGE
    assert "failed reading" in capsys.readouterr().err


def test_estimate_invalid_json(tmp_path: Path, capsys) -> None:
    path = _write(tmp_path / "bad.json", "{nope")

    code = sizecache.cli.main(["estimate", str(path), "--root", str(tmp_path)])
    assert code == sizecache.cli.EXIT_CONFIG_OR_USAGE
    assert "invalid JSON" in capsys.readouterr().err
