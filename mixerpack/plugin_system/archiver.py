"""External archiving collaborators for the packaging pipeline.

The pipeline never compresses anything itself. It hands the working
directory to an :class:`Archiver`, which is expected to leave exactly one
archive named after the project's own convention
(``<package-name>-<package-version>.tgz`` for ``npm pack``) in that
directory.
"""

from __future__ import annotations

import asyncio
import shlex
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Union, runtime_checkable

import structlog

from mixerpack.utils.exceptions import PackagingToolError

logger = structlog.get_logger(__name__)

DEFAULT_COMMAND = ("npm", "pack")


@runtime_checkable
class Archiver(Protocol):
    """Interface for the tool that produces the raw archive."""

    async def produce_archive(self, working_directory: Path) -> Path:
        """Create an archive of the project in ``working_directory``.

        Args:
            working_directory: Directory containing the project to archive

        Returns:
            Path to the archive the tool reports having written

        Raises:
            PackagingToolError: If the tool could not be run or failed
        """
        ...


class CommandArchiver:
    """Archiver that runs an external command once in the working directory.

    The command is expected to print the name of the archive it created on
    the last line of its standard output, as ``npm pack`` does.

    Attributes:
        command: Command and arguments to execute
    """

    def __init__(self, command: Optional[Union[str, Sequence[str]]] = None) -> None:
        """Initialize the archiver.

        Args:
            command: Command to run, either as an argument list or a
                shell-style string. Defaults to ``npm pack``.
        """
        if command is None:
            command = DEFAULT_COMMAND
        if isinstance(command, str):
            command = shlex.split(command)
        if not command:
            raise ValueError("Archiver command cannot be empty")
        self.command: List[str] = list(command)

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)

    async def produce_archive(self, working_directory: Path) -> Path:
        logger.info("Running archiver", command=self.command_line, cwd=str(working_directory))

        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                cwd=str(working_directory),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise PackagingToolError(
                f"Failed to run '{self.command_line}': {e}",
                command=self.command_line,
            ) from e

        stdout, stderr = await process.communicate()
        out_text = stdout.decode("utf-8", errors="replace")
        err_text = stderr.decode("utf-8", errors="replace").strip()

        if process.returncode != 0:
            raise PackagingToolError(
                f"'{self.command_line}' failed with return code {process.returncode}"
                + (f": {err_text}" if err_text else ""),
                command=self.command_line,
                returncode=process.returncode,
                stderr=err_text,
            )

        lines = [line.strip() for line in out_text.splitlines() if line.strip()]
        if not lines:
            raise PackagingToolError(
                f"'{self.command_line}' did not report an archive name",
                command=self.command_line,
                returncode=process.returncode,
                stderr=err_text,
            )

        archive_path = working_directory / lines[-1]
        logger.debug("Archiver finished", archive=str(archive_path))
        return archive_path


class NpmPackArchiver(CommandArchiver):
    """Archiver backed by ``npm pack``."""

    def __init__(self, npm: str = "npm") -> None:
        super().__init__([npm, "pack"])
