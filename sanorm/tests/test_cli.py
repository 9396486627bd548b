import io
import json

from sanorm.cli.main import build_parser, main


def _write(tmp_path, name, value):
    path = tmp_path / name
    path.write_text(json.dumps(value), encoding="utf-8")
    return str(path)


def test_rules_lists_builtins(capsys):
    assert main(["rules"]) == 0
    out = capsys.readouterr().out
    assert "html" in out
    assert "command-injection" in out
    assert "[validate,transform]" in out


def test_sanitize_prints_result(tmp_path, capsys):
    path = _write(tmp_path, "in.json", {"name": " <b>Ann</b> "})

    assert main(["sanitize", path, "--rules", "html,trim"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out == {
        "sanitized": {"name": "Ann"},
        "violations": ["name: HTML_INJECTION"],
        "appliedRules": ["html", "trim"],
    }


def test_sanitize_reads_stdin(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(["  a  "])))

    assert main(["sanitize", "--rules", "trim"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["sanitized"] == ["a"]


def test_sanitize_reject_exits_nonzero(tmp_path, capsys):
    path = _write(tmp_path, "in.json", {"bio": "<script>x</script>"})

    assert main(["sanitize", path, "--rules", "script", "--reject"]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "rejected:" in captured.err
    assert "bio: SCRIPT_INJECTION" in captured.err


def test_sanitize_validate_rules(tmp_path, capsys):
    path = _write(tmp_path, "in.json", "x")

    assert main(["sanitize", path, "--rules", "trim,bogus", "--validate-rules"]) == 1
    assert "bogus" in capsys.readouterr().err

    assert main(["sanitize", path, "--rules", "trim,bogus"]) == 0
    assert json.loads(capsys.readouterr().out)["sanitized"] == "x"


def test_normalize_minimal(tmp_path, capsys):
    path = _write(tmp_path, "in.json", {"id": 7})

    assert main(["normalize", path, "--format", "minimal"]) == 0
    assert json.loads(capsys.readouterr().out) == {"success": True, "data": {"id": 7}}


def test_normalize_paginated_result(tmp_path, capsys):
    path = _write(tmp_path, "in.json", {"items": [1, 2], "page": 1, "limit": 2, "total": 5})

    assert main(["normalize", path, "--request-id", "cli-1"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["data"] == [1, 2]
    assert out["metadata"]["requestId"] == "cli-1"
    assert out["pagination"]["totalPages"] == 3


def test_normalize_error(tmp_path, capsys):
    path = _write(tmp_path, "err.json", {"message": "nope", "password": "x"})

    assert main(["normalize", path, "--error", "--code", "NOT_FOUND", "--error-format", "detailed"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["success"] is False
    assert out["error"]["code"] == "NOT_FOUND"
    assert out["error"]["message"] == "nope"
    assert out["error"]["helpUrl"].endswith("/not_found")


def test_check_config(tmp_path, capsys):
    good = _write(tmp_path, "good.json", {"sanitization": {"rules": ["trim", "sql"]}})
    assert main(["check-config", good]) == 0
    assert "rules=trim,sql" in capsys.readouterr().out

    bad = _write(tmp_path, "bad.json", {"sanitization": {"rules": ["trim", "nope"]}})
    assert main(["check-config", bad]) == 1
    assert "nope" in capsys.readouterr().err

    assert main(["check-config", str(tmp_path / "missing.json")]) == 1


def test_serve_defaults_bind_localhost():
    args = build_parser().parse_args(["serve"])
    assert args.host == "127.0.0.1"
    assert args.port == 8080
