[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "notation"
version = "0.1.0"
description = "Sign and verify OCI artifacts with Notary Project signatures, manage signing keys and drive external signing plugins."
requires-python = ">=3.10"
dependencies = [
    "cryptography",
]
keywords = ["notary", "notation", "oci", "signature", "signing", "verification", "plugin"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["notation"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
