"""Plugin packaging system for mixerpack.

This package validates MIDI Mixer plugin manifests and turns plugin
projects into distributable artifacts.

Modules:
    manifest: Plugin manifest definition and validation
    package: The staged packaging pipeline
    archiver: External archiving tools the pipeline delegates to
    cli: Command-line interface
"""

from __future__ import annotations

from mixerpack.plugin_system.archiver import Archiver, CommandArchiver, NpmPackArchiver
from mixerpack.plugin_system.manifest import (
    PluginManifest,
    ProjectMetadata,
    RangeSetting,
    TextSetting,
    ToggleSetting,
    validate_manifest,
    validate_metadata,
)
from mixerpack.plugin_system.package import (
    PackagingPipeline,
    PipelineContext,
    PipelineResult,
    StageReport,
    StageStatus,
    finalize_artifact,
    reconcile_manifest,
    verify_targets,
)

__all__ = [
    "Archiver",
    "CommandArchiver",
    "NpmPackArchiver",
    "PluginManifest",
    "ProjectMetadata",
    "RangeSetting",
    "TextSetting",
    "ToggleSetting",
    "validate_manifest",
    "validate_metadata",
    "PackagingPipeline",
    "PipelineContext",
    "PipelineResult",
    "StageReport",
    "StageStatus",
    "finalize_artifact",
    "reconcile_manifest",
    "verify_targets",
]
