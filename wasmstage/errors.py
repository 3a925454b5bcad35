from __future__ import annotations

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_TOOLCHAIN_NOT_FOUND = 10
EXIT_BUILD_FAILED = 11
EXIT_MISSING_ARTIFACT = 12
EXIT_PUBLISH_FAILED = 13


class PipelineError(RuntimeError):
    """Base class for conditions that terminate the pipeline."""

    exit_code = 1


class ConfigError(PipelineError):
    """Raised when the pipeline settings cannot be parsed."""

    exit_code = EXIT_CONFIG


class ToolchainNotFound(PipelineError):
    """Raised when no usable cross-compiler can be located or activated."""

    exit_code = EXIT_TOOLCHAIN_NOT_FOUND

    def __init__(self, compiler: str, searched: list[str] | None = None, reason: str = "") -> None:
        self.compiler = compiler
        self.searched = list(searched or [])
        self.reason = reason
        message = f"Could not find an invokable '{compiler}'"
        if reason:
            message += f": {reason}"
        if self.searched:
            message += "\nSearched activation scripts:\n  " + "\n  ".join(self.searched)
        super().__init__(message)


class BuildFailed(PipelineError):
    """Raised when the build driver exits with a non-zero status."""

    exit_code = EXIT_BUILD_FAILED

    def __init__(self, command: list[str], returncode: int, output_tail: str = "") -> None:
        self.command = list(command)
        self.returncode = returncode
        self.output_tail = output_tail
        message = f"Build command {' '.join(command)} failed with exit code {returncode}"
        if output_tail:
            message += f"\n{output_tail}"
        super().__init__(message)


class MissingArtifact(PipelineError):
    """Raised when an expected build output is absent."""

    exit_code = EXIT_MISSING_ARTIFACT

    def __init__(self, name: str, source: str) -> None:
        self.name = name
        self.source = source
        super().__init__(f"{name} not found at {source}")


class PublishError(PipelineError):
    """Raised when the publish directory cannot be created or written."""

    exit_code = EXIT_PUBLISH_FAILED

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot write {path}: {reason}")
