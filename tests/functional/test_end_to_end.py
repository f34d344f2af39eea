"""End-to-end tests: packaging real plugin projects through the CLI and the pipeline."""

import json
import sys
import tarfile
from pathlib import Path

import pytest

from conftest import write_json
from mixerpack.main import main
from mixerpack.plugin_system.archiver import CommandArchiver
from mixerpack.plugin_system.package import PackagingPipeline
from mixerpack.utils.exceptions import MissingTargetError

# Tars the project the way ``npm pack`` would, naming the archive after package.json
# or, without one, after the plugin manifest.
FAKE_NPM_PACK = """
import json, pathlib, tarfile
cwd = pathlib.Path.cwd()
if (cwd / "package.json").exists():
    data = json.loads((cwd / "package.json").read_text())
    name = data["name"]
else:
    data = json.loads((cwd / "plugin.json").read_text())
    name = data["id"]
archive = f"{name}-{data['version']}.tgz"
with tarfile.open(archive, "w:gz") as tar:
    for path in sorted(cwd.iterdir()):
        if path.suffix not in (".tgz", ".midiMixerPlugin"):
            tar.add(path, arcname=f"package/{path.name}")
print(archive)
"""


@pytest.fixture
def archiver(tmp_path_factory):
    script = tmp_path_factory.mktemp("tools") / "fake_npm_pack.py"
    script.write_text(FAKE_NPM_PACK, encoding="utf-8")
    return CommandArchiver([sys.executable, str(script)])


def artifacts(directory: Path):
    return sorted(p.name for p in directory.iterdir() if p.suffix in (".midiMixerPlugin", ".tgz"))


@pytest.mark.asyncio
async def test_package_then_fail_after_entry_removed(plugin_dir, archiver):
    pipeline = PackagingPipeline(archiver=archiver, working_directory=plugin_dir)

    result = await pipeline.run()

    assert artifacts(plugin_dir) == ["foo-1.0.0.midiMixerPlugin"]
    with tarfile.open(result.artifact_path, "r:gz") as tar:
        assert "package/index.js" in tar.getnames()
        assert "package/plugin.json" in tar.getnames()

    before = result.artifact_path.stat().st_mtime_ns
    (plugin_dir / "index.js").unlink()

    with pytest.raises(MissingTargetError) as exc_info:
        await pipeline.run()

    assert exc_info.value.stage == "verify_targets"
    assert artifacts(plugin_dir) == ["foo-1.0.0.midiMixerPlugin"]
    assert result.artifact_path.stat().st_mtime_ns == before


@pytest.mark.asyncio
async def test_repeated_runs_leave_one_artifact(plugin_dir, archiver):
    pipeline = PackagingPipeline(archiver=archiver, working_directory=plugin_dir)

    await pipeline.run()
    await pipeline.run()

    assert artifacts(plugin_dir) == ["foo-1.0.0.midiMixerPlugin"]


@pytest.mark.asyncio
async def test_project_metadata_drives_artifact_name(plugin_dir, manifest_data, archiver):
    manifest_data.update(
        icon="assets/icon.png",
        settings={
            "apiKey": {"label": "API key", "type": "password", "required": True},
            "volume": {"label": "Volume", "type": "slider", "min": 0, "max": 100, "fallback": 50},
        },
    )
    write_json(plugin_dir / "plugin.json", manifest_data)
    (plugin_dir / "assets").mkdir()
    (plugin_dir / "assets" / "icon.png").write_bytes(b"\x89PNG")
    write_json(plugin_dir / "package.json", {"name": "foo-plugin", "version": "1.1.0-beta.1"})

    result = await PackagingPipeline(archiver=archiver, working_directory=plugin_dir).run()

    assert result.artifact_path.name == "foo-plugin-1.1.0-beta.1.midiMixerPlugin"
    assert result.manifest.settings["volume"].fallback == 50
    rewritten = json.loads((plugin_dir / "plugin.json").read_text(encoding="utf-8"))
    assert rewritten["id"] == "foo-plugin"
    assert rewritten["version"] == "1.1.0-beta.1"
    assert rewritten["settings"] == manifest_data["settings"]


def test_cli_end_to_end(plugin_dir, archiver, monkeypatch, capsys):
    (plugin_dir / "mixerpack.yaml").write_text(
        json.dumps({"archiver": {"command": archiver.command}}), encoding="utf-8"
    )
    monkeypatch.chdir(plugin_dir)

    assert main(["pack", "-m", "plugin.json"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert out[:6] == [
        "[PASS] Finding plugin manifest",
        "[PASS] Verifying manifest shape",
        "[SKIP] Syncing project metadata",
        "[PASS] Verifying manifest targets",
        "[PASS] Package",
        "[PASS] Finalising",
    ]
    assert out[-1].endswith("foo-1.0.0.midiMixerPlugin")
    assert artifacts(plugin_dir) == ["foo-1.0.0.midiMixerPlugin"]


def test_cli_reports_archiver_failure(plugin_dir, monkeypatch, capsys):
    (plugin_dir / "mixerpack.yaml").write_text(
        json.dumps({"archiver": {"command": [sys.executable, "-c", "import sys; sys.exit('npm ERR! boom')"]}}),
        encoding="utf-8",
    )
    monkeypatch.chdir(plugin_dir)

    assert main(["pack"]) == 1

    captured = capsys.readouterr()
    assert "[FAIL] Package" in captured.out
    assert "npm ERR! boom" in captured.err
    assert artifacts(plugin_dir) == []
