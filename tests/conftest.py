from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from wasmstage.assets import TransportError
from wasmstage.models import ToolchainHandle


def make_executable(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def make_sdk(root: Path, version: str = "emcc (fake) 3.1.0") -> Path:
    """Create a fake SDK whose activation script puts a fake ``emcc`` on PATH."""

    bin_dir = root / "upstream" / "emscripten"
    make_executable(bin_dir / "emcc", f"#!/bin/sh\necho '{version}'\n")
    script = root / "emsdk_env.sh"
    script.write_text(f'export PATH="{bin_dir}:$PATH"\nexport EMSDK="{root}"\n')
    return script


class FakeTransport:
    def __init__(self, name: str, *, fail: bool = False, payload: bytes = b"PK\x03\x04fake") -> None:
        self.name = name
        self.fail = fail
        self.payload = payload
        self.calls: list[str] = []

    def fetch(self, url: str, destination: Path) -> None:
        self.calls.append(url)
        if self.fail:
            raise TransportError(f"{self.name} unavailable")
        destination.write_bytes(self.payload)


class StubLocator:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = 0

    def resolve(self) -> ToolchainHandle:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return ToolchainHandle(compiler="emcc", activated=False, env=dict(os.environ), version="emcc 3.1.0")


@pytest.fixture
def system_path() -> str:
    return "/usr/local/bin:/usr/bin:/bin"
