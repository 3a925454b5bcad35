from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional


class BuildMode(Enum):
    DEBUG = "debug"
    RELEASE = "release"

    @classmethod
    def parse(cls, value: "str | BuildMode") -> "BuildMode":
        if isinstance(value, BuildMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(mode.value for mode in cls)
            raise ValueError(f"Unknown build mode {value!r} (expected one of: {choices})") from None


@dataclass(frozen=True)
class ToolchainHandle:
    """Resolved compiler plus the environment every later subprocess must use."""

    compiler: str
    activated: bool
    env: Mapping[str, str]
    activation_script: Optional[Path] = None
    version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compiler": self.compiler,
            "activated": self.activated,
            "activation_script": str(self.activation_script) if self.activation_script else None,
            "version": self.version,
        }


@dataclass
class BuildResult:
    returncode: int
    mode: BuildMode
    command: List[str]
    duration_s: float = 0.0
    expected_outputs: List[Path] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "returncode": self.returncode,
            "mode": self.mode.value,
            "command": list(self.command),
            "duration_s": self.duration_s,
            "expected_outputs": [str(path) for path in self.expected_outputs],
        }


@dataclass(frozen=True)
class ArtifactSpec:
    """A build output and the file name it is published under."""

    source: Path
    dest_name: str

    @property
    def name(self) -> str:
        return self.dest_name

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ArtifactSpec":
        source = Path(data["source"])
        return cls(source=source, dest_name=data.get("dest") or source.name)


@dataclass(frozen=True)
class RewriteRule:
    """Regular expression and the literal text that replaces each match."""

    pattern: str
    replacement: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RewriteRule":
        return cls(pattern=data["pattern"], replacement=data["replacement"])


@dataclass(frozen=True)
class AssetDescriptor:
    url: str
    destination: Path

    def is_present(self) -> bool:
        return self.destination.is_file()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AssetDescriptor":
        return cls(url=data["url"], destination=Path(data["destination"]))


@dataclass
class StageResult:
    """Summary emitted by a pipeline stage."""

    name: str
    status: str
    details: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": self.name, "status": self.status, "details": self.details}
