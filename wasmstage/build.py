from __future__ import annotations

import collections
import logging
import subprocess
import sys
import time
from pathlib import Path
from typing import List, Sequence, TextIO

from .config import BuildConfig
from .errors import BuildFailed
from .models import BuildMode, BuildResult, ToolchainHandle

logger = logging.getLogger(__name__)

OUTPUT_TAIL_LINES = 40


class BuildExecutor:
    """Runs the build driver with the resolved toolchain environment."""

    def __init__(
        self,
        config: BuildConfig,
        source_dir: str | Path,
        toolchain: ToolchainHandle,
        expected_outputs: Sequence[Path] = (),
        stream: TextIO | None = None,
    ) -> None:
        self.config = config
        self.source_dir = Path(source_dir)
        self.toolchain = toolchain
        self.expected_outputs = list(expected_outputs)
        self.stream = stream

    def command_for(self, mode: BuildMode) -> List[str]:
        extra = self.config.release_args if mode is BuildMode.RELEASE else self.config.debug_args
        return [*self.config.command, *extra]

    def build(self, mode: BuildMode) -> BuildResult:
        command = self.command_for(mode)
        stream = self.stream or sys.stdout
        tail: collections.deque[str] = collections.deque(maxlen=OUTPUT_TAIL_LINES)
        logger.info("Running %s in %s", " ".join(command), self.source_dir)

        start = time.perf_counter()
        try:
            process = subprocess.Popen(
                command,
                cwd=str(self.source_dir),
                env=dict(self.toolchain.env),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise BuildFailed(command, 127, str(exc)) from exc

        assert process.stdout is not None
        try:
            with process.stdout:
                for line in process.stdout:
                    stream.write(line)
                    stream.flush()
                    tail.append(line.rstrip("\n"))
            returncode = process.wait()
        finally:
            if process.poll() is None:
                process.kill()
                process.wait()
        duration = round(time.perf_counter() - start, 3)

        if returncode != 0:
            raise BuildFailed(command, returncode, "\n".join(tail))
        logger.info("Build finished in %.1fs", duration)
        return BuildResult(
            returncode=returncode,
            mode=mode,
            command=command,
            duration_s=duration,
            expected_outputs=list(self.expected_outputs),
        )
