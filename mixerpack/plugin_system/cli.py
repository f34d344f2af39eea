"""Command-line interface for the mixerpack plugin packager.

This module wires the packaging pipeline to the command line: it parses
arguments, loads configuration, sets up logging, and renders one status
line per pipeline stage.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional, TextIO

from mixerpack.__version__ import __version__
from mixerpack.core.config_manager import ConfigManager
from mixerpack.core.logging_manager import LoggingManager
from mixerpack.plugin_system.package import PackagingPipeline, StageReport, StageStatus
from mixerpack.utils.exceptions import MixerPackError

STATUS_LABELS = {
    StageStatus.PASSED: "PASS",
    StageStatus.FAILED: "FAIL",
    StageStatus.SKIPPED: "SKIP",
}


class ConsoleReporter:
    """Prints a line for every finished pipeline stage."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream or sys.stdout

    def __call__(self, report: StageReport) -> None:
        print(f"[{STATUS_LABELS[report.status]}] {report.title}", file=self.stream)


async def run_pack(
        manifest: Optional[str],
        config_path: Optional[str] = None,
        log_level: Optional[str] = None,
) -> int:
    """Package the plugin described by ``manifest``.

    Args:
        manifest: Manifest path from the command line, if given
        config_path: Configuration file from the command line, if given
        log_level: Log level override

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    config_manager = ConfigManager(config_path=config_path)
    try:
        await config_manager.initialize()
    except MixerPackError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    config = config_manager.schema
    logging_manager = LoggingManager(config.logging)
    try:
        logging_manager.initialize(level=log_level)
    except MixerPackError as e:
        print(f"Error configuring logging: {e}", file=sys.stderr)
        return 1

    logger = logging_manager.get_logger(__name__)
    logger.debug(
        "Configuration loaded",
        from_file=config_manager.loaded_from_file,
        archiver=config.archiver.command,
    )

    try:
        pipeline = PackagingPipeline.from_config(config, reporter=ConsoleReporter())
        try:
            result = await pipeline.run(manifest or config_manager.get("packaging.manifest"))
        except MixerPackError as e:
            print(f"Error packaging plugin: {e.message}", file=sys.stderr)
            return 1

        print(f"Created plugin package: {result.artifact_path}")
        return 0
    finally:
        logging_manager.shutdown()


def pack_command(args: argparse.Namespace) -> int:
    """Handle the pack command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    log_level = "debug" if args.verbose else None
    return asyncio.run(run_pack(args.manifest, args.config, log_level))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mixerpack",
        description="A CLI tool to help with the packaging and distribution of MIDI Mixer plugins.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=str, default=None, help="Path to configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    pack_parser = subparsers.add_parser("pack", help="Package a plugin ready for distribution.")
    pack_parser.add_argument("-m", "--manifest", type=str, default=None, help="Target plugin.json file")
    pack_parser.set_defaults(func=pack_command)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command-line interface.

    Args:
        argv: Command-line arguments (defaults to ``sys.argv[1:]``)

    Returns:
        Exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)
