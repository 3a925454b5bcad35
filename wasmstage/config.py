"""Pipeline settings: defaults, settings-file loading and overrides."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Mapping, Optional

import yaml
from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
    YamlConfigSettingsSource,
)

from .assets import TRANSPORTS
from .errors import ConfigError
from .models import ArtifactSpec, AssetDescriptor, BuildMode, RewriteRule

ENV_PREFIX = "WASMSTAGE_"
TOOLCHAIN_ROOT_ENV = "WASMSTAGE_TOOLCHAIN_ROOT"
EMSDK_ENV = "EMSDK"
ASSET_URL_ENV = "WASMSTAGE_ASSET_URL"
BUILD_MODE_ENV = "WASMSTAGE_BUILD_MODE"

DEFAULT_ASSET_URL = "https://classicube.net/static/default.zip"


@dataclass
class ToolchainConfig:
    compiler: str = "emcc"
    activation_script: str = "emsdk_env.sh"
    root: Optional[Path] = None
    system_roots: List[Path] = field(default_factory=lambda: [Path("/opt/emsdk")])
    home_dir: str = "emsdk"
    project_dir: str = "emsdk"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolchainConfig":
        defaults = cls()
        root = data.get("root")
        return cls(
            compiler=data.get("compiler", defaults.compiler),
            activation_script=data.get("activation_script", defaults.activation_script),
            root=Path(root).expanduser() if root else None,
            system_roots=[Path(p) for p in data.get("system_roots", defaults.system_roots)],
            home_dir=data.get("home_dir", defaults.home_dir),
            project_dir=data.get("project_dir", defaults.project_dir),
        )


@dataclass
class BuildConfig:
    command: List[str] = field(default_factory=lambda: ["make", "web"])
    release_args: List[str] = field(default_factory=lambda: ["RELEASE=1"])
    debug_args: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BuildConfig":
        defaults = cls()
        command = list(data.get("command", defaults.command))
        if not command:
            raise ConfigError("build.command must not be empty")
        return cls(
            command=command,
            release_args=list(data.get("release_args", defaults.release_args)),
            debug_args=list(data.get("debug_args", defaults.debug_args)),
        )


def _default_artifacts() -> List[ArtifactSpec]:
    return [
        ArtifactSpec(Path("build/web/ClassiCube.js"), "ClassiCube.js"),
        ArtifactSpec(Path("build/web/ClassiCube.wasm"), "ClassiCube.wasm"),
    ]


def _default_rewrite_rules() -> List[RewriteRule]:
    return [RewriteRule(r'var url = "[^"]*default\.zip"', 'var url = "/static/default.zip"')]


def _default_assets() -> List[AssetDescriptor]:
    return [AssetDescriptor(DEFAULT_ASSET_URL, Path("static/default.zip"))]


@dataclass
class AssetConfig:
    transports: List[str] = field(default_factory=lambda: ["wget", "curl"])
    items: List[AssetDescriptor] = field(default_factory=_default_assets)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AssetConfig":
        defaults = cls()
        items = defaults.items
        if "items" in data:
            items = [AssetDescriptor.from_dict(entry) for entry in data["items"] or []]
        transports = list(data.get("transports", defaults.transports))
        unknown = [name for name in transports if name not in TRANSPORTS]
        if unknown:
            raise ConfigError(f"Unknown asset transport(s): {', '.join(unknown)}")
        return cls(transports=transports, items=items)


@dataclass
class PipelineConfig:
    """Everything one pipeline run needs; paths are relative until resolved."""

    source_dir: Path = Path(".")
    publish_dir: Path = Path("public")
    static_subdir: str = "static"
    mode: BuildMode = BuildMode.RELEASE
    toolchain: ToolchainConfig = field(default_factory=ToolchainConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    artifacts: List[ArtifactSpec] = field(default_factory=_default_artifacts)
    glue_file: str = "ClassiCube.js"
    rewrite_rules: List[RewriteRule] = field(default_factory=_default_rewrite_rules)
    assets: AssetConfig = field(default_factory=AssetConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        defaults = cls()
        try:
            artifacts = defaults.artifacts
            if "artifacts" in data:
                artifacts = [ArtifactSpec.from_dict(entry) for entry in data["artifacts"] or []]
            if not artifacts:
                raise ConfigError("At least one artifact must be configured")
            rules = defaults.rewrite_rules
            if "rewrite_rules" in data:
                rules = [RewriteRule.from_dict(entry) for entry in data["rewrite_rules"] or []]
            return cls(
                source_dir=Path(data.get("source_dir", defaults.source_dir)),
                publish_dir=Path(data.get("publish_dir", defaults.publish_dir)),
                static_subdir=data.get("static_subdir", defaults.static_subdir),
                mode=BuildMode.parse(data.get("mode", defaults.mode)),
                toolchain=ToolchainConfig.from_dict(data.get("toolchain") or {}),
                build=BuildConfig.from_dict(data.get("build") or {}),
                artifacts=artifacts,
                glue_file=data.get("glue_file", defaults.glue_file),
                rewrite_rules=rules,
                assets=AssetConfig.from_dict(data.get("assets") or {}),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid pipeline settings: {exc}") from exc

    def with_overrides(
        self,
        *,
        source_dir: str | Path | None = None,
        publish_dir: str | Path | None = None,
        mode: str | BuildMode | None = None,
        toolchain_root: str | Path | None = None,
        asset_url: Optional[str] = None,
    ) -> "PipelineConfig":
        """Return a copy with explicit overrides applied; ``None`` leaves a value alone."""

        config = replace(self)
        if source_dir is not None:
            config.source_dir = Path(source_dir)
        if publish_dir is not None:
            config.publish_dir = Path(publish_dir)
        if mode:
            try:
                config.mode = BuildMode.parse(mode)
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
        if toolchain_root:
            config.toolchain = replace(self.toolchain, root=Path(toolchain_root).expanduser())
        if asset_url and self.assets.items:
            # The override targets the well-known bundle, which is always listed first.
            first, *rest = self.assets.items
            config.assets = replace(self.assets, items=[replace(first, url=asset_url), *rest])
        return config

    @property
    def static_dir(self) -> Path:
        return self.publish_dir / self.static_subdir

    @property
    def glue_path(self) -> Path:
        return self.publish_dir / self.glue_file

    def resolved_artifacts(self) -> List[ArtifactSpec]:
        return [
            ArtifactSpec(self.source_dir / spec.source, spec.dest_name) for spec in self.artifacts
        ]

    def resolved_assets(self) -> List[AssetDescriptor]:
        return [
            AssetDescriptor(item.url, self.publish_dir / item.destination) for item in self.assets.items
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_dir": str(self.source_dir),
            "publish_dir": str(self.publish_dir),
            "mode": self.mode.value,
            "compiler": self.toolchain.compiler,
            "build_command": list(self.build.command),
            "artifacts": [str(spec.source) for spec in self.artifacts],
            "assets": [item.url for item in self.assets.items],
        }


class SettingsFileSource(YamlConfigSettingsSource):
    """YAML (or JSON) settings file that must hold a mapping."""

    def _read_file(self, file_path: Path) -> dict[str, Any]:
        try:
            data = super()._read_file(file_path)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Cannot parse settings file {file_path}: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {file_path} must contain a mapping")
        return data


_DOCUMENT_KEYS = (
    "source_dir",
    "publish_dir",
    "static_subdir",
    "mode",
    "toolchain",
    "build",
    "artifacts",
    "glue_file",
    "rewrite_rules",
    "assets",
)


class WasmstageSettings(BaseSettings):
    """Layered settings: init values, then ``WASMSTAGE_*`` env vars, then the settings file."""

    _yaml_file_override: ClassVar[Path | None] = None

    source_dir: Any = None
    publish_dir: Any = None
    static_subdir: Any = None
    mode: Any = None
    toolchain: Any = None
    build: Any = None
    artifacts: Any = None
    glue_file: Any = None
    rewrite_rules: Any = None
    assets: Any = None

    build_mode: Optional[str] = None
    toolchain_root: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(TOOLCHAIN_ROOT_ENV, EMSDK_ENV),
    )
    asset_url: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        file_settings = SettingsFileSource(settings_cls, yaml_file=cls._yaml_file_override)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )

    def to_pipeline_config(self) -> PipelineConfig:
        document = {key: getattr(self, key) for key in _DOCUMENT_KEYS if getattr(self, key) is not None}
        return PipelineConfig.from_dict(document).with_overrides(
            mode=self.build_mode,
            toolchain_root=self.toolchain_root,
            asset_url=self.asset_url,
        )


def load_config(path: str | Path | None = None, **overrides: Any) -> PipelineConfig:
    """Keyword overrides, then environment variables, then the settings file, then defaults.

    ``overrides`` takes ``WasmstageSettings`` field names; ``None`` values are ignored.
    """

    settings_file = Path(path) if path else None
    if settings_file is not None and not settings_file.is_file():
        raise ConfigError(f"Cannot read settings file {settings_file}")

    WasmstageSettings._yaml_file_override = settings_file
    try:
        settings = WasmstageSettings(**{key: value for key, value in overrides.items() if value is not None})
    except (ValidationError, SettingsError) as exc:
        raise ConfigError(f"Invalid pipeline settings: {exc}") from exc
    finally:
        WasmstageSettings._yaml_file_override = None
    return settings.to_pipeline_config()
