"""Pytest configuration and fixtures for mixerpack tests."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest


def write_json(path: Path, data: Any) -> Path:
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


class FakeArchiver:
    """Stands in for ``npm pack``: writes ``<name>-<version>.tgz``.

    The name and version come from the constructor when given, otherwise
    from ``package.json`` when present and finally from ``plugin.json``,
    mirroring how npm names its tarball after the project rather than the
    plugin.
    """

    def __init__(
            self,
            content: bytes = b"archive",
            fail: Optional[Exception] = None,
            name: Optional[str] = None,
            version: Optional[str] = None,
    ) -> None:
        self.content = content
        self.fail = fail
        self.name = name
        self.version = version
        self.calls: List[Path] = []

    def _project_identity(self, working_directory: Path) -> Tuple[str, str]:
        if self.name and self.version:
            return self.name, self.version

        source = working_directory / "package.json"
        if source.exists():
            data = json.loads(source.read_text(encoding="utf-8"))
            return data["name"], data["version"]

        data = json.loads((working_directory / "plugin.json").read_text(encoding="utf-8"))
        return data["id"], data["version"]

    async def produce_archive(self, working_directory: Path) -> Path:
        self.calls.append(working_directory)
        if self.fail is not None:
            raise self.fail

        name, version = self._project_identity(working_directory)
        archive = working_directory / f"{name}-{version}.tgz"
        archive.write_bytes(self.content)
        return archive



@pytest.fixture
def manifest_data() -> Dict[str, Any]:
    """A valid manifest."""
    return {
        "id": "foo",
        "name": "Foo Plugin",
        "version": "1.0.0",
        "author": "Jane Doe",
        "main": "index.js",
    }


@pytest.fixture
def plugin_dir(tmp_path: Path, manifest_data: Dict[str, Any]) -> Path:
    """A plugin project with a manifest and its entry file."""
    write_json(tmp_path / "plugin.json", manifest_data)
    (tmp_path / "index.js").write_text("module.exports = {};\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def fake_archiver() -> FakeArchiver:
    return FakeArchiver()
