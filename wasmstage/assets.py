"""Idempotent retrieval of optional runtime assets.

Unlike every other stage, a failure here does not stop the pipeline: the
deployed client can still start without the asset, so an unrecoverable
fetch is reported as a warning and the run carries on.
"""

from __future__ import annotations

import contextlib
import logging
import shutil
import subprocess
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from .models import AssetDescriptor
from .utils import CommandError, ensure_directory, run_command

logger = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """Raised by a transport that could not retrieve a URL."""


class Transport(Protocol):
    name: str

    def fetch(self, url: str, destination: Path) -> None: ...


class CommandTransport:
    """Downloads by shelling out to a command line tool."""

    def __init__(self, name: str, tool: str, args: Sequence[str]) -> None:
        self.name = name
        self.tool = tool
        self.args = list(args)

    def command(self, url: str, destination: Path) -> List[str]:
        return [self.tool, *(arg.format(url=url, dest=destination) for arg in self.args)]

    def fetch(self, url: str, destination: Path) -> None:
        if shutil.which(self.tool) is None:
            raise TransportError(f"{self.tool} is not installed")
        try:
            run_command(self.command(url, destination))
        except CommandError as exc:
            detail = exc.stderr.strip() or f"exit code {exc.returncode}"
            raise TransportError(f"{self.tool} failed: {detail}") from exc
        except (OSError, subprocess.SubprocessError) as exc:
            raise TransportError(f"{self.tool} could not be run: {exc}") from exc


class UrllibTransport:
    name = "urllib"

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout

    def fetch(self, url: str, destination: Path) -> None:
        try:
            with contextlib.closing(urllib.request.urlopen(url, timeout=self.timeout)) as response:
                with open(destination, "wb") as handle:
                    shutil.copyfileobj(response, handle)
        except (urllib.error.URLError, OSError) as exc:
            raise TransportError(f"urllib failed: {exc}") from exc


def wget_transport() -> CommandTransport:
    return CommandTransport("wget", "wget", ["-q", "-O", "{dest}", "{url}"])


def curl_transport() -> CommandTransport:
    return CommandTransport("curl", "curl", ["-fsSL", "-o", "{dest}", "{url}"])


TRANSPORTS = {
    "wget": wget_transport,
    "curl": curl_transport,
    "urllib": UrllibTransport,
}


def build_transports(names: Sequence[str]) -> List[Transport]:
    transports: List[Transport] = []
    for name in names:
        try:
            transports.append(TRANSPORTS[name]())
        except KeyError:
            raise ValueError(f"Unknown transport {name!r} (expected one of: {', '.join(TRANSPORTS)})") from None
    return transports


class FetchStatus(Enum):
    PRESENT = "present"
    FETCHED = "fetched"
    DEGRADED = "degraded"


@dataclass
class FetchResult:
    asset: AssetDescriptor
    status: FetchStatus
    transport: Optional[str] = None
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return self.status is FetchStatus.DEGRADED

    def to_dict(self) -> Dict[str, object]:
        return {
            "url": self.asset.url,
            "destination": str(self.asset.destination),
            "status": self.status.value,
            "transport": self.transport,
            "failures": dict(self.failures),
        }


class AssetFetcher:
    def __init__(self, transports: Sequence[Transport]) -> None:
        self.transports = list(transports)

    def ensure(self, asset: AssetDescriptor) -> FetchResult:
        if asset.is_present():
            logger.info("%s already exists", asset.destination.name)
            return FetchResult(asset, FetchStatus.PRESENT)

        failures: Dict[str, str] = {}
        try:
            ensure_directory(asset.destination.parent)
        except OSError as exc:
            logger.warning("Cannot create %s: %s", asset.destination.parent, exc)
            failures["mkdir"] = str(exc)
            return FetchResult(asset, FetchStatus.DEGRADED, failures=failures)
        partial = asset.destination.with_name(asset.destination.name + ".part")
        logger.info("Downloading %s", asset.url)
        for transport in self.transports:
            try:
                transport.fetch(asset.url, partial)
                if not partial.is_file():
                    raise TransportError(f"{transport.name} produced no file")
                partial.replace(asset.destination)
            except (TransportError, OSError) as exc:
                failures[transport.name] = str(exc)
                logger.warning("Could not download %s via %s: %s", asset.url, transport.name, exc)
                with contextlib.suppress(OSError):
                    partial.unlink(missing_ok=True)
                continue
            logger.info("Downloaded %s via %s", asset.destination.name, transport.name)
            return FetchResult(asset, FetchStatus.FETCHED, transport=transport.name, failures=failures)

        logger.warning(
            "Could not download %s; it will need to be added to %s manually",
            asset.destination.name,
            asset.destination.parent,
        )
        return FetchResult(asset, FetchStatus.DEGRADED, failures=failures)
