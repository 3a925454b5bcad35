"""Locate the cross-compiler, activating an SDK install when it is not on PATH."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .config import ToolchainConfig
from .errors import ToolchainNotFound
from .models import ToolchainHandle
from .utils import CommandError, run_command

logger = logging.getLogger(__name__)

# Source the script in a throwaway shell and dump the resulting environment.
_ACTIVATE_SNIPPET = '. "$1" >/dev/null 2>&1 && env -0'


class ActivationError(RuntimeError):
    """Raised when an activation script exists but does not yield a compiler."""


def parse_env_dump(raw: str) -> Dict[str, str]:
    env: Dict[str, str] = {}
    for entry in raw.split("\0"):
        if not entry or "=" not in entry:
            continue
        key, value = entry.split("=", 1)
        env[key] = value
    return env


class ToolchainLocator:
    def __init__(
        self,
        config: ToolchainConfig,
        project_root: str | Path = ".",
        environ: Optional[Mapping[str, str]] = None,
        home: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.project_root = Path(project_root)
        self.environ: Dict[str, str] = dict(os.environ if environ is None else environ)
        self.home = Path(home) if home is not None else Path.home()

    def candidate_scripts(self) -> List[Path]:
        """Activation scripts to probe, most explicit first."""

        roots: List[Path] = []
        if self.config.root is not None:
            roots.append(self.config.root)
        roots.extend(self.config.system_roots)
        roots.append(self.home / self.config.home_dir)
        roots.append(self.project_root / self.config.project_dir)

        scripts: List[Path] = []
        for root in roots:
            script = root / self.config.activation_script
            if script not in scripts:
                scripts.append(script)
        return scripts

    def resolve(self) -> ToolchainHandle:
        compiler = self.config.compiler
        direct = shutil.which(compiler, path=self.environ.get("PATH", ""))
        if direct:
            logger.info("Found %s on PATH at %s", compiler, direct)
            try:
                version = self._probe_version(direct, self.environ)
            except ActivationError as exc:
                raise ToolchainNotFound(compiler, reason=str(exc)) from exc
            return ToolchainHandle(compiler=direct, activated=False, env=dict(self.environ), version=version)

        logger.warning("%s not found in PATH, looking for an SDK activation script", compiler)
        searched: List[str] = []
        for script in self.candidate_scripts():
            searched.append(str(script))
            if not script.is_file():
                logger.debug("No activation script at %s", script)
                continue
            logger.info("Found SDK at %s", script.parent)
            try:
                return self._activate(script)
            except ActivationError as exc:
                logger.warning("Activation via %s failed: %s", script, exc)

        raise ToolchainNotFound(compiler, searched, reason="no SDK activation script produced a compiler")

    def _activate(self, script: Path) -> ToolchainHandle:
        try:
            result = run_command(
                ["bash", "-c", _ACTIVATE_SNIPPET, "bash", str(script)],
                cwd=script.parent,
                env=self.environ,
            )
        except CommandError as exc:
            raise ActivationError(f"script exited with status {exc.returncode}") from exc
        except OSError as exc:
            raise ActivationError(f"cannot run bash: {exc}") from exc

        env = parse_env_dump(result.stdout)
        compiler = shutil.which(self.config.compiler, path=env.get("PATH", ""))
        if not compiler:
            raise ActivationError(f"{self.config.compiler} still not on PATH after activation")
        version = self._probe_version(compiler, env)
        return ToolchainHandle(
            compiler=compiler,
            activated=True,
            env=env,
            activation_script=script,
            version=version,
        )

    def _probe_version(self, compiler: str, env: Mapping[str, str]) -> str:
        try:
            result = run_command([compiler, "--version"], env=env)
        except CommandError as exc:
            raise ActivationError(f"{compiler} --version exited with status {exc.returncode}") from exc
        except (OSError, subprocess.SubprocessError) as exc:
            raise ActivationError(f"{compiler} is not executable: {exc}") from exc
        lines = result.stdout.strip().splitlines()
        version = lines[0] if lines else ""
        logger.info("Compiler version: %s", version or "<unknown>")
        return version
