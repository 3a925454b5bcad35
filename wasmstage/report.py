from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .utils import dump_json, human_size, sha256_file

logger = logging.getLogger(__name__)


@dataclass
class ReportEntry:
    path: Path
    size: Optional[int] = None
    sha256: Optional[str] = None

    @property
    def present(self) -> bool:
        return self.size is not None

    def to_dict(self) -> Dict[str, object]:
        return {"path": str(self.path), "size": self.size, "sha256": self.sha256}


class Reporter:
    """Lists the published files for a human to eyeball. Purely informational."""

    def report(self, publish_dir: str | Path, paths: Iterable[Path]) -> List[ReportEntry]:
        publish_dir = Path(publish_dir)
        entries: List[ReportEntry] = []
        logger.info("Build artifacts in %s:", publish_dir)
        for path in paths:
            entry = ReportEntry(path=path)
            try:
                entry.size = path.stat().st_size
                entry.sha256 = sha256_file(path)
            except OSError:
                entry.size = None
                logger.info("  %-32s missing", self._display(path, publish_dir))
            else:
                logger.info("  %-32s %8s", self._display(path, publish_dir), human_size(entry.size))
            entries.append(entry)
        return entries

    def write_json(self, destination: str | Path, entries: Iterable[ReportEntry]) -> None:
        try:
            dump_json(destination, {"artifacts": [entry.to_dict() for entry in entries]})
        except OSError as exc:
            logger.warning("Could not write report to %s: %s", destination, exc)

    @staticmethod
    def _display(path: Path, root: Path) -> str:
        try:
            return str(path.relative_to(root))
        except ValueError:
            return str(path)
