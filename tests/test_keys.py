import copy
import datetime
import json
import os

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from notation import dirs
from notation.keys import (
    ExternalKey,
    KeySuite,
    SigningKeys,
    X509KeyPair,
    load_exec_save_signing_keys,
    load_signing_keys,
    validate_keys,
)
from notation.plugin.client import bin_name


def sample_keys():
    return SigningKeys(
        default="wabbit-networks",
        keys=[
            KeySuite(
                name="wabbit-networks",
                x509_key_pair=X509KeyPair(
                    key_path="/home/demo/.config/notation/localkeys/wabbit-networks.key",
                    certificate_path="/home/demo/.config/notation/localkeys/wabbit-networks.crt",
                ),
            ),
            KeySuite(
                name="import.acme-rockets",
                x509_key_pair=X509KeyPair(
                    key_path="/home/demo/.config/notation/localkeys/import.acme-rockets.key",
                    certificate_path="/home/demo/.config/notation/localkeys/import.acme-rockets.crt",
                ),
            ),
            KeySuite(
                name="external-key",
                external_key=ExternalKey(
                    id="id1", plugin_name="pluginX", plugin_config={"key": "value"}
                ),
            ),
        ],
    )


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(dirs, "USER_CONFIG_DIR", str(tmp_path))
    monkeypatch.setattr(dirs, "USER_LIBEXEC_DIR", str(tmp_path))
    return tmp_path


def _make_key_and_cert():
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test Root")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return key, cert


def _write_pair(directory, key, cert, stem="pair"):
    cert_path = directory / f"{stem}.crt"
    key_path = directory / f"{stem}.key"
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return str(cert_path), str(key_path)


@pytest.fixture
def cert_key(tmp_path):
    key, cert = _make_key_and_cert()
    return _write_pair(tmp_path, key, cert)


def _write_signing_keys(directory, body):
    (directory / "signingkeys.json").write_text(json.dumps(body))


# Loading


def test_load_valid(config_dir):
    _write_signing_keys(config_dir, sample_keys().to_dict())
    loaded = load_signing_keys()
    assert loaded.default == sample_keys().default
    assert loaded.keys == sample_keys().keys


def test_load_duplicate_keys(config_dir):
    body = {
        "default": "wabbit-networks",
        "keys": [
            {"name": "wabbit-networks", "keyPath": "/a.key", "certPath": "/a.crt"},
            {"name": "wabbit-networks", "keyPath": "/b.key", "certPath": "/b.crt"},
        ],
    }
    _write_signing_keys(config_dir, body)
    with pytest.raises(ValueError) as info:
        load_signing_keys()
    assert str(info.value) == (
        "malformed signingkeys.json: multiple keys with name 'wabbit-networks' found"
    )


def test_load_invalid_default(config_dir):
    body = {
        "default": "missing-default",
        "keys": [{"name": "wabbit-networks", "keyPath": "/a.key", "certPath": "/a.crt"}],
    }
    _write_signing_keys(config_dir, body)
    with pytest.raises(ValueError) as info:
        load_signing_keys()
    assert str(info.value) == (
        "malformed signingkeys.json: default key 'missing-default' not found"
    )


def test_load_missing_file_gives_empty_keys(config_dir):
    loaded = load_signing_keys()
    assert loaded.default is None
    assert loaded.keys == []


# Saving


def test_save_round_trip(config_dir):
    keys = sample_keys()
    keys.save()
    loaded = load_signing_keys()
    assert loaded.default == keys.default
    assert loaded.keys == keys.keys


def test_save_without_default(config_dir):
    keys = sample_keys()
    keys.default = None
    keys.save()
    loaded = load_signing_keys()
    assert loaded.default is None
    assert loaded.keys == keys.keys
    saved = json.loads((config_dir / "signingkeys.json").read_text())
    assert "default" not in saved


def test_save_duplicate_keys(config_dir):
    keys = sample_keys()
    keys.keys.append(
        KeySuite(
            name="import.acme-rockets",
            x509_key_pair=X509KeyPair(
                key_path="/keypath", certificate_path="/CertificatePath"
            ),
        )
    )
    with pytest.raises(ValueError) as info:
        keys.save()
    assert str(info.value) == (
        "malformed signingkeys.json: multiple keys with name "
        "'import.acme-rockets' found"
    )
    assert not (config_dir / "signingkeys.json").exists()


def test_save_empty_key_name(config_dir):
    keys = sample_keys()
    keys.keys[0].name = ""
    with pytest.raises(ValueError) as info:
        keys.save()
    assert str(info.value) == "malformed signingkeys.json: key name cannot be empty"


def test_save_invalid_default(config_dir):
    keys = sample_keys()
    keys.default = "missing-default"
    with pytest.raises(ValueError) as info:
        keys.save()
    assert str(info.value) == (
        "malformed signingkeys.json: default key 'missing-default' not found"
    )

    keys.default = ""
    with pytest.raises(ValueError) as info:
        keys.save()
    assert str(info.value) == (
        "malformed signingkeys.json: default key name cannot be empty"
    )


def test_validate_keys_accepts_sample():
    keys = sample_keys()
    validate_keys(keys)
    assert [k.name for k in keys.keys] == [
        "wabbit-networks",
        "import.acme-rockets",
        "external-key",
    ]


# Serialisation


def test_key_suite_to_dict():
    keys = sample_keys()
    assert keys.keys[0].to_dict() == {
        "name": "wabbit-networks",
        "keyPath": "/home/demo/.config/notation/localkeys/wabbit-networks.key",
        "certPath": "/home/demo/.config/notation/localkeys/wabbit-networks.crt",
    }
    assert keys.keys[2].to_dict() == {
        "name": "external-key",
        "id": "id1",
        "pluginName": "pluginX",
        "pluginConfig": {"key": "value"},
    }


def test_key_suite_from_dict_round_trip():
    for suite in sample_keys().keys:
        assert KeySuite.from_dict(suite.to_dict()) == suite


def test_signing_keys_from_dict_rejects_bad_keys():
    with pytest.raises(ValueError):
        SigningKeys.from_dict({"keys": "nope"})


# Adding


def test_add_with_default(cert_key):
    cert_path, key_path = cert_key
    keys = sample_keys()
    keys.add("name1", key_path, cert_path, True)
    expected = sample_keys().keys + [
        KeySuite(
            name="name1",
            x509_key_pair=X509KeyPair(key_path=key_path, certificate_path=cert_path),
        )
    ]
    assert keys.default == "name1"
    assert keys.keys == expected


def test_add_without_default(cert_key):
    cert_path, key_path = cert_key
    keys = sample_keys()
    keys.add("name2", key_path, cert_path, False)
    expected = sample_keys().keys + [
        KeySuite(
            name="name2",
            x509_key_pair=X509KeyPair(key_path=key_path, certificate_path=cert_path),
        )
    ]
    assert keys.default == "wabbit-networks"
    assert keys.keys == expected


def test_add_invalid_cert_key_location():
    keys = sample_keys()
    with pytest.raises(FileNotFoundError):
        keys.add("name1", "invalid", "invalid", True)
    assert len(keys.keys) == 3


def test_add_invalid_name():
    keys = sample_keys()
    with pytest.raises(ValueError) as info:
        keys.add("", "invalid", "invalid", True)
    assert str(info.value) == "key name cannot be empty"


def test_add_duplicate_key(cert_key):
    cert_path, key_path = cert_key
    keys = sample_keys()
    with pytest.raises(ValueError) as info:
        keys.add("wabbit-networks", key_path, cert_path, True)
    assert "already exists" in str(info.value)
    assert len(keys.keys) == 3


def test_add_mismatched_key_and_cert(tmp_path):
    key_a, cert_a = _make_key_and_cert()
    key_b, _ = _make_key_and_cert()
    cert_path, _ = _write_pair(tmp_path, key_a, cert_a, "a")
    _, key_path = _write_pair(tmp_path, key_b, cert_a, "b")
    keys = sample_keys()
    with pytest.raises(ValueError) as info:
        keys.add("name1", key_path, cert_path, False)
    assert str(info.value) == "private key does not match public key"


def test_add_garbage_certificate(tmp_path):
    cert_path = tmp_path / "cert.crt"
    key_path = tmp_path / "key.key"
    cert_path.write_text("not a certificate")
    key_path.write_text("not a key")
    keys = sample_keys()
    with pytest.raises(ValueError):
        keys.add("name1", str(key_path), str(cert_path), False)


# Adding plugin keys

PLUGIN_CONFIG = {"key1": "value1"}


def test_add_plugin_invalid_name():
    with pytest.raises(ValueError) as info:
        sample_keys().add_plugin("", "pluginId1", "pluginName1", PLUGIN_CONFIG, True)
    assert str(info.value) == "key name cannot be empty"


def test_add_plugin_invalid_id():
    with pytest.raises(ValueError) as info:
        sample_keys().add_plugin("name1", "", "pluginName1", PLUGIN_CONFIG, True)
    assert str(info.value) == "missing key id"


def test_add_plugin_invalid_plugin_name():
    with pytest.raises(ValueError) as info:
        sample_keys().add_plugin("name1", "pluginId1", "", PLUGIN_CONFIG, True)
    assert str(info.value) == "plugin name cannot be empty"


def test_add_plugin_not_installed(config_dir):
    keys = sample_keys()
    with pytest.raises(FileNotFoundError):
        keys.add_plugin("name1", "pluginId1", "pluginName1", PLUGIN_CONFIG, True)
    assert len(keys.keys) == 3


def test_add_plugin_installed(config_dir):
    plugin_dir = config_dir / "plugins" / "pluginName1"
    plugin_dir.mkdir(parents=True)
    executable = plugin_dir / bin_name("pluginName1")
    executable.write_text("")
    os.chmod(executable, 0o700)

    keys = sample_keys()
    keys.add_plugin("name1", "pluginId1", "pluginName1", PLUGIN_CONFIG, True)
    assert keys.default == "name1"
    assert keys.keys[-1] == KeySuite(
        name="name1",
        external_key=ExternalKey(
            id="pluginId1", plugin_name="pluginName1", plugin_config=PLUGIN_CONFIG
        ),
    )


# Lookup and edits


def test_get_valid():
    keys = sample_keys()
    assert keys.get("external-key") == keys.keys[2]


def test_get_non_existent():
    with pytest.raises(LookupError) as info:
        sample_keys().get("nonExistent")
    assert str(info.value) == "signing key not found"


def test_get_invalid_name():
    with pytest.raises(ValueError):
        sample_keys().get("")


def test_get_default_valid():
    keys = sample_keys()
    assert keys.get_default().name == "wabbit-networks"


def test_get_default_none():
    keys = sample_keys()
    keys.default = None
    with pytest.raises(LookupError) as info:
        keys.get_default()
    assert "default signing key not set" in str(info.value)


def test_update_default_valid():
    keys = sample_keys()
    keys.update_default("import.acme-rockets")
    assert keys.default == "import.acme-rockets"


def test_update_default_non_existent():
    keys = sample_keys()
    with pytest.raises(LookupError) as info:
        keys.update_default("nonExistent")
    assert str(info.value) == "key with name 'nonExistent' not found"
    assert keys.default == "wabbit-networks"


def test_update_default_invalid_name():
    with pytest.raises(ValueError):
        sample_keys().update_default("")


def test_remove_sequence():
    keys = sample_keys()
    assert keys.remove("wabbit-networks") == ["wabbit-networks"]
    with pytest.raises(LookupError):
        keys.get("wabbit-networks")
    assert keys.default is None

    with pytest.raises(LookupError) as info:
        keys.remove("wabbit-networks")
    assert str(info.value) == "wabbit-networks: not found"

    with pytest.raises(ValueError):
        keys.remove("")


def test_remove_several_keeps_other_default():
    keys = sample_keys()
    removed = keys.remove("import.acme-rockets", "external-key")
    assert removed == ["import.acme-rockets", "external-key"]
    assert [k.name for k in keys.keys] == ["wabbit-networks"]
    assert keys.default == "wabbit-networks"


def test_edit_does_not_touch_copy():
    original = sample_keys()
    copied = copy.deepcopy(original)
    copied.remove("external-key")
    assert len(original.keys) == 3


def test_load_exec_save(config_dir):
    sample_keys().save()
    load_exec_save_signing_keys(lambda keys: keys.update_default("external-key"))
    assert load_signing_keys().default == "external-key"


def test_load_exec_save_propagates_error(config_dir):
    sample_keys().save()

    def fail(keys):
        keys.remove("wabbit-networks")
        raise RuntimeError("stop")

    with pytest.raises(RuntimeError):
        load_exec_save_signing_keys(fail)
    assert len(load_signing_keys().keys) == 3