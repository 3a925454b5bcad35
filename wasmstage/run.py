from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import load_config
from .errors import ConfigError
from .logging_utils import configure_logging
from .models import BuildMode
from .pipeline import DeployPipeline, Stage

logger = logging.getLogger(__name__)


def _load_pipeline(args: argparse.Namespace) -> DeployPipeline:
    config = load_config(
        args.config,
        source_dir=args.source_dir,
        publish_dir=args.publish_dir,
        build_mode=args.mode,
        toolchain_root=args.toolchain_root,
        asset_url=args.asset_url,
    )
    logger.info("Pipeline settings: %s", json.dumps(config.to_dict()))
    report_json = Path(args.report_json) if args.report_json else None
    return DeployPipeline(config, report_json=report_json)


def _run_to_stage(args: argparse.Namespace, stage: Stage) -> int:
    try:
        pipeline = _load_pipeline(args)
    except ConfigError as exc:
        logger.error("%s", exc)
        return exc.exit_code
    outcome = pipeline.run_until(stage)
    print(json.dumps(outcome.to_dict(), indent=2))
    if outcome.succeeded:
        logger.info("Ready for deployment from %s", pipeline.config.publish_dir)
    return outcome.exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build the web client and stage it for static hosting")
    parser.add_argument("--config", default=None, help="Settings file (JSON or YAML).")
    parser.add_argument("--source-dir", default=None, help="Source tree containing the build entry point.")
    parser.add_argument("--publish-dir", default=None, help="Directory handed to the hosting provider.")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in BuildMode],
        default=None,
        help="Build mode (default: release).",
    )
    parser.add_argument("--toolchain-root", default=None, help="SDK root to activate if the compiler is not on PATH.")
    parser.add_argument("--asset-url", default=None, help="Origin URL of the auxiliary resource bundle.")
    parser.add_argument("--report-json", default=None, help="Also write the artifact report to this file.")
    parser.add_argument("--log-file", default=None, help="Append log output to this file.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the whole pipeline")
    run_parser.set_defaults(func=lambda args: _run_to_stage(args, Stage.REPORT))

    for command, stage in (
        ("toolchain", Stage.TOOLCHAIN),
        ("build", Stage.BUILD),
        ("stage", Stage.STAGE),
        ("patch", Stage.PATCH),
        ("assets", Stage.ASSETS),
    ):
        stage_parser = subparsers.add_parser(command, help=f"Run the pipeline up to: {command}")
        stage_parser.set_defaults(func=lambda args, stage=stage: _run_to_stage(args, stage))

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(
        Path(args.log_file) if args.log_file else None,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
