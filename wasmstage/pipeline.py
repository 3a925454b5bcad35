from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, TextIO

from .assets import AssetFetcher, FetchResult, FetchStatus, build_transports
from .build import BuildExecutor
from .config import PipelineConfig
from .errors import EXIT_OK, PipelineError
from .models import BuildResult, StageResult, ToolchainHandle
from .patching import GluePatcher, PatchResult
from .report import Reporter, ReportEntry
from .staging import ArtifactStager, StagingResult
from .toolchain import ToolchainLocator

logger = logging.getLogger(__name__)


class StagePolicy(Enum):
    FAIL_FAST = "fail_fast"
    WARN = "warn"


class Stage(Enum):
    TOOLCHAIN = auto()
    BUILD = auto()
    STAGE = auto()
    PATCH = auto()
    ASSETS = auto()
    REPORT = auto()

    @classmethod
    def ordered(cls) -> Iterable["Stage"]:
        return (
            cls.TOOLCHAIN,
            cls.BUILD,
            cls.STAGE,
            cls.PATCH,
            cls.ASSETS,
            cls.REPORT,
        )

    @property
    def policy(self) -> StagePolicy:
        if self in (Stage.PATCH, Stage.ASSETS, Stage.REPORT):
            return StagePolicy.WARN
        return StagePolicy.FAIL_FAST


class PipelineState(Enum):
    INIT = auto()
    TOOLCHAIN_RESOLVED = auto()
    BUILT = auto()
    STAGED = auto()
    PATCHED = auto()
    ASSETS_ENSURED = auto()
    REPORTED = auto()
    FAILED = auto()


_STATE_AFTER: Dict[Stage, PipelineState] = {
    Stage.TOOLCHAIN: PipelineState.TOOLCHAIN_RESOLVED,
    Stage.BUILD: PipelineState.BUILT,
    Stage.STAGE: PipelineState.STAGED,
    Stage.PATCH: PipelineState.PATCHED,
    Stage.ASSETS: PipelineState.ASSETS_ENSURED,
    Stage.REPORT: PipelineState.REPORTED,
}


@dataclass
class PipelineContext:
    """Values produced by earlier stages and read by later ones."""

    config: PipelineConfig
    toolchain: Optional[ToolchainHandle] = None
    build: Optional[BuildResult] = None
    staging: Optional[StagingResult] = None
    patch: Optional[PatchResult] = None
    fetches: List[FetchResult] = field(default_factory=list)
    report: List[ReportEntry] = field(default_factory=list)


@dataclass
class PipelineOutcome:
    state: PipelineState
    results: List[StageResult]
    error: Optional[PipelineError] = None

    @property
    def succeeded(self) -> bool:
        return self.state is not PipelineState.FAILED

    @property
    def exit_code(self) -> int:
        return self.error.exit_code if self.error is not None else EXIT_OK

    def to_dict(self) -> Dict[str, object]:
        return {
            "state": self.state.name.lower(),
            "exit_code": self.exit_code,
            "error": str(self.error) if self.error is not None else None,
            "stages": [result.to_dict() for result in self.results],
        }


ExecutorFactory = Callable[[ToolchainHandle], BuildExecutor]


class DeployPipeline:
    """Runs the stages in order; fail-fast stages end the run, warn stages never do."""

    def __init__(
        self,
        config: PipelineConfig,
        *,
        locator: Optional[ToolchainLocator] = None,
        executor_factory: Optional[ExecutorFactory] = None,
        stager: Optional[ArtifactStager] = None,
        patcher: Optional[GluePatcher] = None,
        fetcher: Optional[AssetFetcher] = None,
        reporter: Optional[Reporter] = None,
        environ: Optional[Mapping[str, str]] = None,
        stream: Optional[TextIO] = None,
        report_json: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.locator = locator or ToolchainLocator(
            config.toolchain,
            project_root=config.source_dir,
            environ=os.environ if environ is None else environ,
        )
        self.executor_factory = executor_factory or self._default_executor
        self.stager = stager or ArtifactStager(config.publish_dir, config.static_subdir)
        self.patcher = patcher or GluePatcher()
        self.fetcher = fetcher or AssetFetcher(build_transports(config.assets.transports))
        self.reporter = reporter or Reporter()
        self.stream = stream
        self.report_json = report_json
        self.context = PipelineContext(config=config)
        self.state = PipelineState.INIT
        self._handlers: Dict[Stage, Callable[[PipelineContext], StageResult]] = {
            Stage.TOOLCHAIN: self._stage_toolchain,
            Stage.BUILD: self._stage_build,
            Stage.STAGE: self._stage_stage,
            Stage.PATCH: self._stage_patch,
            Stage.ASSETS: self._stage_assets,
            Stage.REPORT: self._stage_report,
        }

    def _default_executor(self, toolchain: ToolchainHandle) -> BuildExecutor:
        return BuildExecutor(
            self.config.build,
            self.config.source_dir,
            toolchain,
            expected_outputs=[spec.source for spec in self.config.resolved_artifacts()],
            stream=self.stream,
        )

    def run(self) -> PipelineOutcome:
        return self.run_until(Stage.REPORT)

    def run_until(self, target_stage: Stage) -> PipelineOutcome:
        results: List[StageResult] = []
        for stage in Stage.ordered():
            name = stage.name.lower()
            logger.info("==> [%s] starting", name)
            try:
                result = self._handlers[stage](self.context)
            except PipelineError as exc:
                if stage.policy is StagePolicy.FAIL_FAST:
                    logger.error("<== [%s] failed: %s", name, exc)
                    results.append(StageResult(name, "failed", {"error": str(exc)}))
                    self.state = PipelineState.FAILED
                    return PipelineOutcome(self.state, results, exc)
                logger.warning("<== [%s] continuing after: %s", name, exc)
                result = StageResult(name, "warning", {"error": str(exc)})
            else:
                logger.info("<== [%s] %s", name, result.status)
            results.append(result)
            self.state = _STATE_AFTER[stage]
            if stage is target_stage:
                break
        return PipelineOutcome(self.state, results)

    def _stage_toolchain(self, context: PipelineContext) -> StageResult:
        context.toolchain = self.locator.resolve()
        return StageResult("toolchain", "completed", context.toolchain.to_dict())

    def _stage_build(self, context: PipelineContext) -> StageResult:
        if context.toolchain is None:
            raise RuntimeError("Toolchain stage must run before build.")
        executor = self.executor_factory(context.toolchain)
        context.build = executor.build(self.config.mode)
        return StageResult("build", "completed", context.build.to_dict())

    def _stage_stage(self, context: PipelineContext) -> StageResult:
        context.staging = self.stager.stage(self.config.resolved_artifacts())
        return StageResult(
            "stage",
            "completed",
            {
                "publish_dir": str(context.staging.publish_dir),
                "copied": [str(path) for path in context.staging.copied],
            },
        )

    def _stage_patch(self, context: PipelineContext) -> StageResult:
        context.patch = self.patcher.patch(self.config.glue_path, self.config.rewrite_rules)
        details: Dict[str, object] = {
            "path": str(context.patch.path),
            "changed": context.patch.changed,
            "substitutions": context.patch.substitutions,
        }
        if not context.patch.ok:
            details["error"] = context.patch.error
            return StageResult("patch", "warning", details)
        return StageResult("patch", "completed", details)

    def _stage_assets(self, context: PipelineContext) -> StageResult:
        context.fetches = [self.fetcher.ensure(asset) for asset in self.config.resolved_assets()]
        status = "completed"
        if any(fetch.status is FetchStatus.DEGRADED for fetch in context.fetches):
            status = "warning"
        return StageResult("assets", status, {"assets": [fetch.to_dict() for fetch in context.fetches]})

    def _stage_report(self, context: PipelineContext) -> StageResult:
        paths = [self.config.publish_dir / spec.dest_name for spec in self.config.artifacts]
        paths.extend(asset.destination for asset in self.config.resolved_assets())
        context.report = self.reporter.report(self.config.publish_dir, paths)
        if self.report_json is not None:
            self.reporter.write_json(self.report_json, context.report)
        return StageResult("report", "completed", {"artifacts": [entry.to_dict() for entry in context.report]})
