import json

import pytest

from notation.dirs import SysFS
from notation.plugin.client import bin_name
from notation.plugin.manager import CLIManager
from notation.plugin.proto import Capability, GetMetadataRequest, GetMetadataResponse


class FakeCommander:
    def __init__(self, stdout):
        self.stdout = stdout
        self.paths = []

    def output(self, path, command, request):
        self.paths.append(path)
        return self.stdout


def _install(root, name):
    directory = root / name
    directory.mkdir()
    path = directory / bin_name(name)
    path.write_bytes(b"binary")
    return path


def _metadata_json(metadata):
    return json.dumps(metadata.to_dict()).encode()


VALID_METADATA = GetMetadataResponse(
    name="foo",
    description="friendly",
    version="1",
    url="example.com",
    supported_contract_versions=["1.0"],
    capabilities=[Capability.SIGNATURE_GENERATOR],
)


def test_get(tmp_path):
    path = _install(tmp_path, "foo")
    commander = FakeCommander(_metadata_json(VALID_METADATA))
    manager = CLIManager(SysFS(str(tmp_path)), commander)
    plugin = manager.get("foo")
    assert plugin.name == "foo"
    assert plugin.path == SysFS(str(tmp_path)).sys_path("foo", bin_name("foo"))
    assert plugin.get_metadata(GetMetadataRequest()) == VALID_METADATA
    assert commander.paths == [str(path)]


def test_get_missing(tmp_path):
    manager = CLIManager(SysFS(str(tmp_path)))
    with pytest.raises(FileNotFoundError):
        manager.get("foo")


def test_list_empty(tmp_path):
    assert CLIManager(SysFS(str(tmp_path))).list() == []


def test_list_missing_root(tmp_path):
    assert CLIManager(SysFS(str(tmp_path / "absent"))).list() == []


def test_list_with_plugins(tmp_path):
    (tmp_path / "foo").mkdir()
    (tmp_path / "baz").mkdir()
    (tmp_path / "notes.txt").write_text("not a plugin")
    assert CLIManager(SysFS(str(tmp_path))).list() == ["baz", "foo"]


def test_integration_list_get_metadata(tmp_path):
    _install(tmp_path, "foo")
    example = GetMetadataResponse(
        name="foo",
        description="friendly",
        version="1",
        url="example.com",
        supported_contract_versions=["1.0"],
        capabilities=["cap"],
    )
    manager = CLIManager(SysFS(str(tmp_path)), FakeCommander(_metadata_json(example)))
    plugins = manager.list()
    assert len(plugins) == 1
    plugin = manager.get(plugins[0])
    assert plugin.get_metadata(GetMetadataRequest()) == example