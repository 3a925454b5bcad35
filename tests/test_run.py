from __future__ import annotations

import json
from pathlib import Path

import pytest

from wasmstage import run


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch) -> None:
    monkeypatch.setattr(run, "configure_logging", lambda *args, **kwargs: None)
    for name in ("WASMSTAGE_BUILD_MODE", "WASMSTAGE_ASSET_URL", "WASMSTAGE_SOURCE_DIR", "WASMSTAGE_PUBLISH_DIR"):
        monkeypatch.delenv(name, raising=False)


def test_parser_stage_commands() -> None:
    parser = run.build_parser()
    args = parser.parse_args(["--mode", "debug", "build"])
    assert args.command == "build"
    assert args.mode == "debug"


def test_missing_toolchain_exit_code(tmp_path: Path, monkeypatch, capsys) -> None:
    empty = tmp_path / "empty"
    empty.mkdir()
    monkeypatch.setenv("PATH", str(empty))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("EMSDK", raising=False)
    monkeypatch.delenv("WASMSTAGE_TOOLCHAIN_ROOT", raising=False)
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({"toolchain": {"system_roots": []}}))

    code = run.main(
        [
            "--config",
            str(settings),
            "--source-dir",
            str(tmp_path),
            "--toolchain-root",
            str(tmp_path / "sdk"),
            "toolchain",
        ]
    )

    assert code == 10
    output = json.loads(capsys.readouterr().out)
    assert output["state"] == "failed"
    assert output["stages"][0]["stage"] == "toolchain"


def test_config_error_exit_code(tmp_path: Path) -> None:
    settings = tmp_path / "settings.json"
    settings.write_text("[1, 2]")

    assert run.main(["--config", str(settings), "run"]) == 2
