"""Utility functions and classes for mixerpack."""

from mixerpack.utils.exceptions import (
    ConfigurationError,
    FinalizationError,
    ManifestInvalidError,
    ManifestMalformedError,
    ManifestUnreadableError,
    ManifestWriteError,
    MetadataInvalidError,
    MissingTargetError,
    MixerPackError,
    PackagingToolError,
    PipelineError,
)

__all__ = [
    "ConfigurationError",
    "FinalizationError",
    "ManifestInvalidError",
    "ManifestMalformedError",
    "ManifestUnreadableError",
    "ManifestWriteError",
    "MetadataInvalidError",
    "MissingTargetError",
    "MixerPackError",
    "PackagingToolError",
    "PipelineError",
]
