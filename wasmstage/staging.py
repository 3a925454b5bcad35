"""Copy build outputs into the publish directory.

Artifacts are handled strictly in order and copied as soon as they are
found: when a later artifact is missing, the earlier ones have already
been copied and nothing after the missing one is touched. Filesystem
errors while writing the publish directory surface as ``PublishError``.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

from .errors import MissingArtifact, PublishError
from .models import ArtifactSpec
from .utils import ensure_directory

logger = logging.getLogger(__name__)


@dataclass
class StagingResult:
    publish_dir: Path
    copied: List[Path] = field(default_factory=list)


class ArtifactStager:
    def __init__(self, publish_dir: str | Path, static_subdir: str = "static") -> None:
        self.publish_dir = Path(publish_dir)
        self.static_subdir = static_subdir

    def prepare(self) -> Path:
        try:
            ensure_directory(self.publish_dir)
            ensure_directory(self.publish_dir / self.static_subdir)
        except OSError as exc:
            raise PublishError(str(self.publish_dir), exc.strerror or str(exc)) from exc
        return self.publish_dir

    def stage(self, expected: Sequence[ArtifactSpec]) -> StagingResult:
        self.prepare()
        result = StagingResult(publish_dir=self.publish_dir)
        for artifact in expected:
            if not artifact.source.is_file():
                logger.error("%s not found in %s", artifact.name, artifact.source.parent)
                raise MissingArtifact(artifact.name, str(artifact.source))
            destination = self.publish_dir / artifact.dest_name
            try:
                shutil.copyfile(artifact.source, destination)
            except OSError as exc:
                raise PublishError(str(destination), exc.strerror or str(exc)) from exc
            logger.info("Copied %s", artifact.name)
            result.copied.append(destination)
        return result
