from __future__ import annotations
import json
import re
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

import pydantic
from pydantic import ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr, field_validator

from mixerpack.utils.exceptions import ManifestInvalidError, MetadataInvalidError

SEMVER_PATTERN = re.compile(
    r'(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)'
    r'(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?'
    r'(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?'
)
SEMVER_MESSAGE = 'Version must be a valid semver version number, e.g. `1.0.0`.'

ShortText = Annotated[str, Field(strict=True, min_length=1, max_length=100)]
LongText = Annotated[str, Field(strict=True, min_length=1, max_length=1024)]
Number = Union[StrictInt, StrictFloat]


def is_semver(value: str) -> bool:
    return SEMVER_PATTERN.fullmatch(value) is not None


def _check_semver(v: str) -> str:
    if not is_semver(v):
        raise ValueError(SEMVER_MESSAGE)
    return v


class _SettingBase(pydantic.BaseModel):
    model_config = ConfigDict(extra='ignore')

    label: ShortText
    required: Optional[StrictBool] = None


class TextSetting(_SettingBase):
    """Free-form string setting, also used for passwords, status lines and buttons."""

    type: Literal['text', 'password', 'status', 'button']
    fallback: Optional[LongText] = None


class ToggleSetting(_SettingBase):
    type: Literal['toggle']
    fallback: Optional[StrictBool] = None


class RangeSetting(_SettingBase):
    """Numeric setting bounded by ``min`` and ``max``."""

    type: Literal['integer', 'slider']
    min: Number
    max: Number
    fallback: Optional[Number] = None


PluginSetting = Annotated[
    Union[TextSetting, ToggleSetting, RangeSetting],
    Field(discriminator='type'),
]


class PluginManifest(pydantic.BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    id: ShortText
    name: ShortText
    version: StrictStr
    author: ShortText
    main: ShortText
    dev: Optional[ShortText] = None
    remote: Optional[ShortText] = None
    icon: Optional[ShortText] = None
    remote_icon: Optional[ShortText] = Field(default=None, alias='remoteIcon')
    settings: Optional[Dict[str, PluginSetting]] = None

    @field_validator('version')
    @classmethod
    def validate_version(cls, v: str) -> str:
        return _check_semver(v)

    @property
    def base_name(self) -> str:
        """Stem shared by the archiver output and the final artifact."""
        return f'{self.id}-{self.version}'

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def load(cls, path: Union[str, Path]) -> PluginManifest:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f'Manifest file not found: {path}')
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return validate_manifest(data)


class ProjectMetadata(pydantic.BaseModel):
    """The ``name`` and ``version`` of the surrounding project (``package.json``)."""

    model_config = ConfigDict(extra='ignore')

    name: StrictStr
    version: StrictStr

    @field_validator('version')
    @classmethod
    def validate_version(cls, v: str) -> str:
        return _check_semver(v)


def _first_error(exc: pydantic.ValidationError, root_name: str) -> Tuple[str, str]:
    """Return the dotted location and message of the first validation error."""
    error = exc.errors()[0]
    location = '.'.join(str(part) for part in error['loc'])
    message = error['msg']
    if message.startswith('Value error, '):
        message = message[len('Value error, '):]
    return location or root_name, message


def _error_list(exc: pydantic.ValidationError) -> List[Dict[str, Any]]:
    return [
        {'loc': list(error['loc']), 'msg': error['msg'], 'type': error['type']}
        for error in exc.errors()
    ]


def validate_manifest(raw: Any) -> PluginManifest:
    """Validate untyped JSON data as a plugin manifest.

    Args:
        raw: Parsed JSON content of a manifest file

    Returns:
        The validated manifest

    Raises:
        ManifestInvalidError: If any field violates the schema. The error
            describes the first violation in field declaration order.
    """
    try:
        return PluginManifest.model_validate(raw)
    except pydantic.ValidationError as e:
        field, constraint = _first_error(e, 'manifest')
        raise ManifestInvalidError(
            f"Invalid manifest field '{field}': {constraint}",
            field=field,
            constraint=constraint,
            details={'validation_errors': _error_list(e)},
        ) from e


def validate_metadata(raw: Any, path: Optional[str] = None) -> ProjectMetadata:
    """Validate untyped JSON data as project metadata.

    Raises:
        MetadataInvalidError: If ``name`` or ``version`` is missing or invalid
    """
    try:
        return ProjectMetadata.model_validate(raw)
    except pydantic.ValidationError as e:
        field, constraint = _first_error(e, 'metadata')
        raise MetadataInvalidError(
            f"Invalid project metadata field '{field}': {constraint}",
            path=path,
            field=field,
            constraint=constraint,
            details={'validation_errors': _error_list(e)},
        ) from e
