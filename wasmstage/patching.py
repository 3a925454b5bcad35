from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from .models import RewriteRule

logger = logging.getLogger(__name__)


@dataclass
class PatchResult:
    path: Path
    substitutions: List[int] = field(default_factory=list)
    changed: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def apply_rules(text: str, rules: Sequence[RewriteRule]) -> tuple[str, List[int]]:
    """Apply each rule in order, returning the new text and per-rule match counts."""

    counts: List[int] = []
    for rule in rules:
        # A callable replacement keeps backslashes in the replacement literal.
        text, count = re.subn(rule.pattern, lambda _match, value=rule.replacement: value, text)
        counts.append(count)
    return text, counts


class GluePatcher:
    """Best-effort textual rewrites of generated glue code."""

    def patch(self, glue_path: str | Path, rules: Sequence[RewriteRule]) -> PatchResult:
        glue_path = Path(glue_path)
        result = PatchResult(path=glue_path)
        try:
            with open(glue_path, encoding="utf-8", newline="") as handle:
                original = handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            result.error = f"cannot read {glue_path}: {exc}"
            logger.warning("Skipping glue patch: %s", result.error)
            return result

        try:
            patched, result.substitutions = apply_rules(original, rules)
        except re.error as exc:
            result.error = f"invalid rewrite pattern: {exc}"
            logger.warning("Skipping glue patch: %s", result.error)
            return result

        for rule, count in zip(rules, result.substitutions):
            logger.debug("Rule %r matched %d time(s)", rule.pattern, count)
        if patched == original:
            logger.info("%s already up to date", glue_path.name)
            return result

        try:
            with open(glue_path, "w", encoding="utf-8", newline="") as handle:
                handle.write(patched)
        except OSError as exc:
            result.error = f"cannot write {glue_path}: {exc}"
            logger.warning("Glue patch not applied, deployed file may reference stale URLs: %s", exc)
            return result

        result.changed = True
        logger.info("Patched %s (%d substitution(s))", glue_path.name, sum(result.substitutions))
        return result
