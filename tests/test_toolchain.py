from __future__ import annotations

import os
from pathlib import Path

import pytest

from wasmstage.config import ToolchainConfig
from wasmstage.errors import ToolchainNotFound
from wasmstage.toolchain import ToolchainLocator, parse_env_dump

from conftest import make_executable, make_sdk


def _locator(tmp_path: Path, environ: dict, **config) -> ToolchainLocator:
    config.setdefault("system_roots", [])
    return ToolchainLocator(
        ToolchainConfig(**config),
        project_root=tmp_path / "project",
        environ=environ,
        home=tmp_path / "home",
    )


def test_parse_env_dump_handles_values_with_equals_and_newlines() -> None:
    raw = "PATH=/a:/b\0OPTS=-O2 -sX=1\0MULTI=line1\nline2\0\0"
    assert parse_env_dump(raw) == {"PATH": "/a:/b", "OPTS": "-O2 -sX=1", "MULTI": "line1\nline2"}


def test_compiler_on_path_needs_no_activation(tmp_path: Path, system_path: str) -> None:
    bin_dir = tmp_path / "bin"
    make_executable(bin_dir / "emcc", "#!/bin/sh\necho 'emcc 3.1.50'\n")
    locator = _locator(tmp_path, {"PATH": f"{bin_dir}:{system_path}"})

    handle = locator.resolve()

    assert handle.activated is False
    assert handle.compiler == str(bin_dir / "emcc")
    assert handle.version == "emcc 3.1.50"
    assert handle.activation_script is None


def test_candidate_order(tmp_path: Path) -> None:
    locator = _locator(tmp_path, {}, root=tmp_path / "override", system_roots=[Path("/opt/emsdk")])
    assert locator.candidate_scripts() == [
        tmp_path / "override" / "emsdk_env.sh",
        Path("/opt/emsdk/emsdk_env.sh"),
        tmp_path / "home" / "emsdk" / "emsdk_env.sh",
        tmp_path / "project" / "emsdk" / "emsdk_env.sh",
    ]


def test_activation_from_home_sdk(tmp_path: Path, system_path: str) -> None:
    script = make_sdk(tmp_path / "home" / "emsdk")
    locator = _locator(tmp_path, {"PATH": system_path})

    handle = locator.resolve()

    assert handle.activated is True
    assert handle.activation_script == script
    assert handle.compiler.endswith("emcc")
    assert handle.env["EMSDK"] == str(tmp_path / "home" / "emsdk")
    assert handle.version == "emcc (fake) 3.1.0"


def test_activation_does_not_mutate_process_environment(tmp_path: Path, system_path: str) -> None:
    make_sdk(tmp_path / "project" / "emsdk")
    before = dict(os.environ)
    environ = {"PATH": system_path}

    handle = _locator(tmp_path, environ).resolve()

    assert dict(os.environ) == before
    assert environ == {"PATH": system_path}
    assert handle.env["PATH"] != system_path


def test_first_matching_candidate_wins(tmp_path: Path, system_path: str) -> None:
    override = make_sdk(tmp_path / "override", version="emcc override")
    make_sdk(tmp_path / "home" / "emsdk", version="emcc home")

    handle = _locator(tmp_path, {"PATH": system_path}, root=tmp_path / "override").resolve()

    assert handle.activation_script == override
    assert handle.version == "emcc override"


def test_broken_candidate_falls_through_to_next(tmp_path: Path, system_path: str) -> None:
    broken = tmp_path / "override" / "emsdk_env.sh"
    broken.parent.mkdir(parents=True)
    broken.write_text("exit 3\n")
    home_script = make_sdk(tmp_path / "home" / "emsdk")

    handle = _locator(tmp_path, {"PATH": system_path}, root=tmp_path / "override").resolve()

    assert handle.activation_script == home_script


def test_no_candidate_raises_toolchain_not_found(tmp_path: Path) -> None:
    empty = tmp_path / "empty-bin"
    empty.mkdir()
    locator = _locator(tmp_path, {"PATH": str(empty)}, root=tmp_path / "override")

    with pytest.raises(ToolchainNotFound) as excinfo:
        locator.resolve()

    assert excinfo.value.exit_code == 10
    assert str(tmp_path / "override" / "emsdk_env.sh") in excinfo.value.searched
    assert len(excinfo.value.searched) == 3


def test_compiler_that_cannot_report_version(tmp_path: Path, system_path: str) -> None:
    bin_dir = tmp_path / "bin"
    make_executable(bin_dir / "emcc", "#!/bin/sh\nexit 1\n")

    with pytest.raises(ToolchainNotFound):
        _locator(tmp_path, {"PATH": f"{bin_dir}:{system_path}"}).resolve()
