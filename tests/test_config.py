import json
import os

import pytest

from notation import dirs
from notation.config import Config, load_config, load_json, save_json

SAMPLE_CONFIG = Config(
    insecure_registries=["registry.wabbit-networks.io"],
    signature_format="jws",
)


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(dirs, "USER_CONFIG_DIR", str(tmp_path))
    return tmp_path


def test_load_non_existent_file(config_dir):
    with pytest.raises(FileNotFoundError):
        load_json("non-existent")


def test_load_symlink(config_dir):
    target = config_dir / "real.json"
    target.write_text("{}")
    os.symlink(target, config_dir / "symlink")
    expected = '"%s" is not a regular file (symlinks are not supported)' % os.path.join(
        str(config_dir), "symlink"
    )
    with pytest.raises(ValueError) as info:
        load_json("symlink")
    assert str(info.value) == expected


def test_load_directory(config_dir):
    (config_dir / "adir").mkdir()
    with pytest.raises(ValueError, match="is not a regular file"):
        load_json("adir")


def test_load_file(config_dir):
    (config_dir / "config.json").write_text(
        json.dumps(
            {
                "insecureRegistries": ["registry.wabbit-networks.io"],
                "signatureFormat": "jws",
            }
        )
    )
    assert load_config() == SAMPLE_CONFIG


def test_save_file(config_dir):
    SAMPLE_CONFIG.save()
    assert load_config() == SAMPLE_CONFIG


def test_load_missing_config_returns_default(config_dir):
    assert load_config() == Config()


def test_save_creates_parent_directories(tmp_path, monkeypatch):
    root = tmp_path / "a" / "b"
    monkeypatch.setattr(dirs, "USER_CONFIG_DIR", str(root))
    SAMPLE_CONFIG.save()
    assert (root / "config.json").is_file()
    assert load_config() == SAMPLE_CONFIG


def test_save_json_format(tmp_path):
    path = tmp_path / "out.json"
    save_json(str(path), {"a": [1]})
    text = path.read_text()
    assert text == '{\n    "a": [\n        1\n    ]\n}\n'


def test_to_dict_omits_empty_fields():
    assert Config().to_dict() == {"insecureRegistries": []}
    full = Config(["r"], "store", {"h": "helper"}, "cose")
    assert full.to_dict() == {
        "insecureRegistries": ["r"],
        "credsStore": "store",
        "credHelpers": {"h": "helper"},
        "signatureFormat": "cose",
    }


def test_from_dict_round_trip():
    full = Config(["r"], "store", {"h": "helper"}, "cose")
    assert Config.from_dict(full.to_dict()) == full


def test_from_dict_rejects_bad_types():
    with pytest.raises(ValueError):
        Config.from_dict({"insecureRegistries": "nope"})
    with pytest.raises(ValueError):
        Config.from_dict([])