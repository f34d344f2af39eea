"""Plugin packaging pipeline for mixerpack.

This module turns a plugin project into a single distributable artifact.
Packaging runs as an ordered sequence of stages that each receive the
current :class:`PipelineContext` and return a new one:

1. ``load``: read the manifest file
2. ``validate``: parse and validate the manifest
3. ``reconcile``: sync ``id``/``version`` from the project metadata file,
   rewriting the manifest on disk (skipped when there is no metadata file)
4. ``verify_targets``: check that ``main`` and ``icon`` exist
5. ``archive``: run the external archiver
6. ``finalize``: rename the raw archive to ``<id>-<version>.<extension>``

The first failing stage aborts the run. Nothing done by earlier stages is
rolled back; in particular a manifest rewritten by ``reconcile`` stays
rewritten.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Union

import aiofiles
import aiofiles.os
import structlog

from mixerpack.plugin_system.archiver import Archiver, CommandArchiver, NpmPackArchiver
from mixerpack.plugin_system.manifest import (
    PluginManifest,
    ProjectMetadata,
    validate_manifest,
    validate_metadata,
)
from mixerpack.utils.exceptions import (
    FinalizationError,
    ManifestMalformedError,
    ManifestUnreadableError,
    ManifestWriteError,
    MetadataInvalidError,
    MissingTargetError,
    PackagingToolError,
    PipelineError,
)

logger = structlog.get_logger(__name__)

DEFAULT_MANIFEST_PATH = "plugin.json"
DEFAULT_METADATA_PATH = "package.json"
DEFAULT_ARCHIVE_EXTENSION = "tgz"
DEFAULT_DISTRIBUTION_EXTENSION = "midiMixerPlugin"


@dataclasses.dataclass(frozen=True)
class PipelineContext:
    """State carried from one pipeline stage to the next.

    Attributes:
        manifest_path: Absolute path to the manifest file
        working_directory: Directory the archiver runs in and the artifact lands in
        metadata_path: Absolute path to the project metadata file
        manifest_data: Raw text of the manifest file
        raw_manifest: Parsed JSON content of the manifest
        manifest: The validated manifest, set once validation passed
        metadata: Validated project metadata, when a metadata file was found
        archive_path: Archive reported by the archiver
        artifact_path: The final artifact
    """

    manifest_path: Path
    working_directory: Path
    metadata_path: Path
    manifest_data: Optional[str] = None
    raw_manifest: Optional[Dict[str, Any]] = None
    manifest: Optional[PluginManifest] = None
    metadata: Optional[ProjectMetadata] = None
    archive_path: Optional[Path] = None
    artifact_path: Optional[Path] = None

    @property
    def manifest_directory(self) -> Path:
        return self.manifest_path.parent

    def require_manifest(self) -> PluginManifest:
        if self.manifest is None:
            raise RuntimeError("Manifest has not been validated yet")
        return self.manifest

    def require_artifact(self) -> Path:
        if self.artifact_path is None:
            raise RuntimeError("Artifact has not been finalized yet")
        return self.artifact_path


class StageStatus(str, enum.Enum):
    """Outcome of a single pipeline stage."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclasses.dataclass(frozen=True)
class StageReport:
    name: str
    title: str
    status: StageStatus
    error: Optional[BaseException] = None


StageHandler = Callable[[PipelineContext], Awaitable[PipelineContext]]
StagePredicate = Callable[[PipelineContext], Awaitable[bool]]
StageReporter = Callable[[StageReport], None]


class Stage(NamedTuple):
    name: str
    title: str
    handler: StageHandler
    enabled: Optional[StagePredicate] = None


@dataclasses.dataclass(frozen=True)
class PipelineResult:
    artifact_path: Path
    manifest: PluginManifest
    reports: List[StageReport]


def reconcile_manifest(
        manifest: PluginManifest,
        metadata: Union[ProjectMetadata, Dict[str, Any], None],
        metadata_path: Optional[str] = None,
) -> PluginManifest:
    """Overlay project metadata onto a manifest.

    The metadata ``name`` replaces the manifest ``id`` and the metadata
    ``version`` replaces the manifest ``version``. No other field is
    touched, and the manifest never flows back into the metadata.

    Args:
        manifest: A validated manifest
        metadata: Project metadata, raw or validated. ``None`` leaves the
            manifest unchanged.
        metadata_path: Location of the metadata, used in error messages

    Returns:
        The reconciled, re-validated manifest

    Raises:
        MetadataInvalidError: If the metadata itself is malformed
        ManifestInvalidError: If the overlaid values make the manifest invalid
    """
    if metadata is None:
        return manifest

    if not isinstance(metadata, ProjectMetadata):
        metadata = validate_metadata(metadata, path=metadata_path)

    data = manifest.to_dict()
    data["id"] = metadata.name
    data["version"] = metadata.version
    return validate_manifest(data)


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON
    raise ValueError(f"Unexpected constant {name}")


async def _target_exists(path: Path) -> bool:
    try:
        return await aiofiles.os.path.exists(path)
    except (ValueError, OSError):
        return False


async def verify_targets(manifest: PluginManifest, manifest_directory: Path) -> None:
    """Check that the local files referenced by a manifest exist.

    ``main`` is always checked and ``icon`` is checked when set. ``dev``,
    ``remote`` and ``remoteIcon`` may be URLs or development-only paths and
    are not checked.

    Args:
        manifest: A validated manifest
        manifest_directory: Directory the manifest paths are relative to

    Raises:
        MissingTargetError: For the first missing target, ``main`` first
    """
    targets = {"main": manifest.main}
    if manifest.icon:
        targets["icon"] = manifest.icon

    resolved: Dict[str, Path] = {}
    for field, value in targets.items():
        path = manifest_directory / value
        try:
            resolved[field] = path.resolve()
        except (ValueError, OSError) as e:
            raise MissingTargetError(
                f"Manifest target '{field}' is not a usable path: {value!r}",
                field=field,
                path=str(path),
            ) from e

    results = await asyncio.gather(*(_target_exists(path) for path in resolved.values()))

    missing = [field for field, exists in zip(resolved, results) if not exists]
    if not missing:
        return

    for field in missing[1:]:
        logger.warning("Manifest target missing", field=field, path=str(resolved[field]))

    field = missing[0]
    raise MissingTargetError(
        f"Manifest target '{field}' not found: {resolved[field]}",
        field=field,
        path=str(resolved[field]),
    )


async def finalize_artifact(
        manifest: PluginManifest,
        working_directory: Path,
        archive_extension: str = DEFAULT_ARCHIVE_EXTENSION,
        distribution_extension: str = DEFAULT_DISTRIBUTION_EXTENSION,
) -> Path:
    """Rename the archiver output to the canonical artifact name.

    Any previous artifact with the same name is replaced, so finalizing the
    same manifest version twice leaves a single artifact behind.

    Args:
        manifest: The validated manifest
        working_directory: Directory holding the archiver output
        archive_extension: Extension of the raw archive
        distribution_extension: Extension of the final artifact

    Returns:
        Path to the artifact

    Raises:
        FinalizationError: If the raw archive is missing, a stale artifact
            cannot be removed, or the rename fails. The raw archive is left
            in place in every case.
    """
    raw_path = working_directory / f"{manifest.base_name}.{archive_extension}"
    artifact_path = working_directory / f"{manifest.base_name}.{distribution_extension}"

    if not await aiofiles.os.path.isfile(raw_path):
        raise FinalizationError(
            f"Archive not found: {raw_path}",
            path=str(raw_path),
        )

    try:
        await aiofiles.os.remove(artifact_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        raise FinalizationError(
            f"Failed to remove previous artifact {artifact_path}: {e}",
            path=str(artifact_path),
        ) from e
    else:
        logger.info("Removed previous artifact", path=str(artifact_path))

    try:
        await aiofiles.os.rename(raw_path, artifact_path)
    except OSError as e:
        raise FinalizationError(
            f"Failed to rename {raw_path} to {artifact_path}: {e}",
            path=str(raw_path),
        ) from e

    return artifact_path


class PackagingPipeline:
    """Runs the packaging stages for a plugin manifest.

    Attributes:
        archiver: Tool producing the raw archive
        working_directory: Directory the archiver runs in
        metadata_path: Project metadata file, relative to the working directory
        archive_extension: Extension of the archiver output
        distribution_extension: Extension of the final artifact
        reporter: Callback receiving a report after each stage
    """

    def __init__(
            self,
            archiver: Optional[Archiver] = None,
            working_directory: Optional[Union[str, Path]] = None,
            metadata_path: Union[str, Path] = DEFAULT_METADATA_PATH,
            archive_extension: str = DEFAULT_ARCHIVE_EXTENSION,
            distribution_extension: str = DEFAULT_DISTRIBUTION_EXTENSION,
            reporter: Optional[StageReporter] = None,
    ) -> None:
        self.archiver = archiver or NpmPackArchiver()
        self.working_directory = Path(working_directory or Path.cwd()).resolve()
        self.metadata_path = Path(metadata_path)
        self.archive_extension = archive_extension
        self.distribution_extension = distribution_extension
        self.reporter = reporter
        self.stages: List[Stage] = [
            Stage("load", "Finding plugin manifest", self._load),
            Stage("validate", "Verifying manifest shape", self._validate),
            Stage("reconcile", "Syncing project metadata", self._reconcile, self._has_metadata),
            Stage("verify_targets", "Verifying manifest targets", self._verify_targets),
            Stage("archive", "Package", self._archive),
            Stage("finalize", "Finalising", self._finalize),
        ]

    @classmethod
    def from_config(
            cls,
            config: Any,
            working_directory: Optional[Union[str, Path]] = None,
            reporter: Optional[StageReporter] = None,
    ) -> PackagingPipeline:
        """Create a pipeline from a validated configuration schema.

        Args:
            config: A :class:`mixerpack.core.config_manager.ConfigSchema`
            working_directory: Directory the pipeline operates in
            reporter: Stage report callback

        Returns:
            Configured pipeline
        """
        return cls(
            archiver=CommandArchiver(config.archiver.command),
            working_directory=working_directory,
            metadata_path=config.packaging.metadata,
            archive_extension=config.archiver.extension,
            distribution_extension=config.packaging.extension,
            reporter=reporter,
        )

    def create_context(self, manifest_path: Optional[Union[str, Path]] = None) -> PipelineContext:
        manifest_path = Path(manifest_path or DEFAULT_MANIFEST_PATH)
        if not manifest_path.is_absolute():
            manifest_path = self.working_directory / manifest_path
        return PipelineContext(
            manifest_path=manifest_path.resolve(),
            working_directory=self.working_directory,
            metadata_path=(self.working_directory / self.metadata_path).resolve(),
        )

    async def run(self, manifest_path: Optional[Union[str, Path]] = None) -> PipelineResult:
        """Package the plugin described by a manifest.

        Args:
            manifest_path: Path to the manifest, relative to the working
                directory. Defaults to ``plugin.json``.

        Returns:
            The artifact path, the final manifest and one report per stage

        Raises:
            PipelineError: The error of the first failing stage, with its
                ``stage`` attribute set
        """
        context = self.create_context(manifest_path)
        reports: List[StageReport] = []
        log = logger.bind(manifest=str(context.manifest_path))
        log.info("Packaging started")

        for stage in self.stages:
            if stage.enabled is not None and not await stage.enabled(context):
                log.debug("Stage skipped", stage=stage.name)
                self._report(reports, StageReport(stage.name, stage.title, StageStatus.SKIPPED))
                continue

            log.debug("Stage started", stage=stage.name)
            try:
                context = await stage.handler(context)
            except Exception as e:
                if isinstance(e, PipelineError):
                    e.stage = stage.name
                log.error("Stage failed", stage=stage.name, error=str(e))
                self._report(reports, StageReport(stage.name, stage.title, StageStatus.FAILED, e))
                raise

            self._report(reports, StageReport(stage.name, stage.title, StageStatus.PASSED))

        artifact_path = context.require_artifact()
        log.info("Packaging finished", artifact=str(artifact_path))
        return PipelineResult(
            artifact_path=artifact_path,
            manifest=context.require_manifest(),
            reports=reports,
        )

    def _report(self, reports: List[StageReport], report: StageReport) -> None:
        reports.append(report)
        if self.reporter:
            self.reporter(report)

    async def _load(self, context: PipelineContext) -> PipelineContext:
        try:
            async with aiofiles.open(context.manifest_path, "r", encoding="utf-8") as f:
                data = await f.read()
        except FileNotFoundError as e:
            raise ManifestUnreadableError(
                f"Manifest file not found: {context.manifest_path}",
                path=str(context.manifest_path),
            ) from e
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestUnreadableError(
                f"Failed to read manifest {context.manifest_path}: {e}",
                path=str(context.manifest_path),
            ) from e

        return dataclasses.replace(context, manifest_data=data)

    async def _validate(self, context: PipelineContext) -> PipelineContext:
        if context.manifest_data is None:
            raise RuntimeError("Manifest data was not loaded")

        try:
            raw = json.loads(context.manifest_data, parse_constant=_reject_constant)
        except json.JSONDecodeError as e:
            raise ManifestMalformedError(
                f"Manifest is not valid JSON: {e}",
                path=str(context.manifest_path),
                line=e.lineno,
                column=e.colno,
            ) from e
        except ValueError as e:
            raise ManifestMalformedError(
                f"Manifest is not valid JSON: {e}",
                path=str(context.manifest_path),
            ) from e

        manifest = validate_manifest(raw)
        return dataclasses.replace(context, raw_manifest=raw, manifest=manifest)

    async def _has_metadata(self, context: PipelineContext) -> bool:
        return await aiofiles.os.path.isfile(context.metadata_path)

    async def _reconcile(self, context: PipelineContext) -> PipelineContext:
        manifest = context.require_manifest()
        metadata_path = str(context.metadata_path)

        try:
            async with aiofiles.open(context.metadata_path, "r", encoding="utf-8") as f:
                raw_metadata = json.loads(await f.read(), parse_constant=_reject_constant)
        except (OSError, ValueError) as e:
            raise MetadataInvalidError(
                f"Failed to read project metadata {metadata_path}: {e}",
                path=metadata_path,
            ) from e

        metadata = validate_metadata(raw_metadata, path=metadata_path)
        reconciled = reconcile_manifest(manifest, metadata)

        if reconciled == manifest:
            logger.debug("Manifest already in sync with project metadata")
            return dataclasses.replace(context, metadata=metadata)

        raw_manifest = dict(context.raw_manifest or {})
        raw_manifest["id"] = reconciled.id
        raw_manifest["version"] = reconciled.version
        content = json.dumps(raw_manifest, indent=2) + "\n"
        await self._write_manifest(context.manifest_path, content)

        logger.info(
            "Manifest synced with project metadata",
            id=reconciled.id,
            version=reconciled.version,
        )
        return dataclasses.replace(
            context,
            manifest_data=content,
            raw_manifest=raw_manifest,
            manifest=reconciled,
            metadata=metadata,
        )

    @staticmethod
    async def _write_manifest(path: Path, content: str) -> None:
        temp_path = str(path) + ".tmp"
        try:
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(content)
            await aiofiles.os.replace(temp_path, path)
        except OSError as e:
            raise ManifestWriteError(
                f"Failed to write manifest {path}: {e}",
                path=str(path),
            ) from e

    async def _verify_targets(self, context: PipelineContext) -> PipelineContext:
        await verify_targets(context.require_manifest(), context.manifest_directory)
        return context

    async def _archive(self, context: PipelineContext) -> PipelineContext:
        try:
            archive_path = await self.archiver.produce_archive(context.working_directory)
        except PipelineError:
            raise
        except Exception as e:
            raise PackagingToolError(f"Archiver failed: {e}") from e
        return dataclasses.replace(context, archive_path=archive_path)

    async def _finalize(self, context: PipelineContext) -> PipelineContext:
        manifest = context.require_manifest()
        expected = context.working_directory / f"{manifest.base_name}.{self.archive_extension}"
        if context.archive_path is not None and context.archive_path != expected:
            logger.warning(
                "Archiver reported an unexpected archive name",
                reported=str(context.archive_path),
                expected=str(expected),
            )

        artifact_path = await finalize_artifact(
            manifest,
            context.working_directory,
            archive_extension=self.archive_extension,
            distribution_extension=self.distribution_extension,
        )
        return dataclasses.replace(context, artifact_path=artifact_path)
