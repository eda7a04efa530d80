# notation

A library for signing and verifying OCI artifacts with Notary Project
signatures. It provides:

- the signing and verification workflow, run against a repository and a
  signer or verifier that you supply;
- the user configuration directory layout and `config.json`;
- the `signingkeys.json` list of signing keys;
- a client for external signing and verification plugins that speaks the
  plugin JSON contract.

## Installation

```
pip install notation
```

To install the test dependencies as well:

```
pip install "notation[test]"
```

## Signing and verifying

`notation.operations.sign` and `notation.operations.verify` run the workflow.
They work against any object that implements the `Repository` protocol
(`resolve`, `list_signatures`, `fetch_signature_blob`, `push_signature`).
Signing is done by a `Signer`, and checking is done by a `Verifier`:

```python
from notation.operations import SignOptions, VerifyOptions, sign, verify

descriptor = sign(signer, repo, SignOptions(
    artifact_reference="registry.example.com/app@sha256:...",
    user_metadata={"buildId": "42"},
))

descriptor, outcomes = verify(verifier, repo, VerifyOptions(
    artifact_reference="registry.example.com/app@sha256:...",
    max_signature_attempts=50,
))
```

How `sign` works:

- It resolves the reference, which may be a tag, a digest or a full reference.
- It rejects a digest that does not match the resolved one.
- It adds the user metadata to the descriptor's annotations. Keys that start
  with `io.cncf.notary` are rejected, and so are keys that are already present.
- It pushes the signature. The pushed signature carries the certificate chain
  thumbprint annotation and the `org.opencontainers.image.created` annotation.

How `verify` works:

- It tries the artifact's signatures in order until one passes. At most
  `max_signature_attempts` signatures are tried, and this value must be
  positive.
- It returns the outcome of the signature that passed.
- If the verifier also implements `VerifySkipper` and asks to skip, `verify`
  returns an empty descriptor. The single outcome it returns carries only the
  verification level.

`VerificationOutcome.user_metadata()` returns the annotations of the signed
target artifact.

Failures raise exceptions from `notation.errors`, such as:

- `SignatureRetrievalFailedError`
- `VerificationFailedError`
- `UserMetadataVerificationFailedError`
- `PushSignatureFailedError`

All of them derive from `NotationError`.

## Configuration and signing keys

```python
from notation.config import load_config
from notation.keys import load_signing_keys, load_exec_save_signing_keys

config = load_config()
keys = load_signing_keys()
default_key = keys.get_default()

load_exec_save_signing_keys(
    lambda keys: keys.add("mykey", "/path/to/key.pem", "/path/to/cert.pem", True)
)
```

Loading and saving keys:

- `load_config()` returns an empty `Config` when `config.json` does not exist.
  `load_signing_keys()` likewise returns an empty `SigningKeys` when
  `signingkeys.json` does not exist.
- Symbolic links and directories are refused in place of either file.

Adding keys:

- `SigningKeys.add` checks that the certificate and the private key (both PEM)
  belong together.
- `SigningKeys.add_plugin` requires the named plugin to be installed.

Validation:

- `validate_keys` is applied on load and on save.
- It rejects empty or repeated key names and an unknown default key.

Paths come from `notation.dirs`:

- `config_fs()` gives the user configuration directory, and `plugin_fs()` gives
  the plugin directory.
- `local_key_path(name)` and `x509_trust_store_dir(...)` give relative paths
  inside that directory.
- To use another configuration directory, assign `notation.dirs.USER_CONFIG_DIR`.
  You can also call `load_user_path(fn)` with a function that returns the base
  directory.

## Plugins

```python
from notation.dirs import plugin_fs
from notation.plugin.manager import CLIManager
from notation.plugin.proto import GetMetadataRequest

manager = CLIManager(plugin_fs())
print(manager.list())
plugin = manager.get("example")
metadata = plugin.get_metadata(GetMetadataRequest())
```

Finding plugins:

- `CLIManager.list()` returns the sorted names of the plugin directories.
- `CLIManager.get(name)` expects the executable `notation-<name>` inside the
  directory of that name. On Windows the file name is `notation-<name>.exe`.

Running plugins:

- `CLIPlugin` runs the executable with the command name as its argument and
  the JSON request on standard input.
- An error reported by the plugin is raised as `RequestError`.
- A response that cannot be decoded is raised as `NotCompliantError`.
- Pass your own `commander` to `CLIManager` or `CLIPlugin` to run commands
  another way.

The message types live in `notation.plugin.proto`. The key spec, hash and
signing algorithm names live in `notation.plugin.algorithm`.

## Other helpers

- `notation.envelope` holds:
  - the `Descriptor`, `Payload` and `SignerInfo` types;
  - `validate_payload_content_type`;
  - `sanitize_target_artifact`;
  - `signing_time`.
- `notation.pkix.parse_distinguished_name` parses an X.509 subject under the
  trust policy rules. `C`, `ST` and `O` are required, and multi-valued or
  repeated attributes are refused. `is_subset_dn` compares two parsed names.
- `notation.files.is_valid_file_name` checks that a file name is safe on every
  platform.

## Logging

By default nothing is logged. To log, wrap the calls in
`with notation.log.with_logger(logger):`. `notation.log.get_logger()` returns
the logger that is active at the time of the call.

## What this package does not do

- It has no registry client. You provide the `Repository` implementation.
- It does not build or parse JWS or COSE signature envelopes.
- It does not evaluate trust policies or trust stores, and it has no ready-made
  `Signer` or `Verifier`.
- It has no command-line program.