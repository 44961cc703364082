[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pcomm"
version = "0.1.0"
description = "Building blocks of a peer-to-peer encrypted messenger: sealed boxes, onion layers, wire framing and SQLite storage"
requires-python = ">=3.10"
keywords = ["chat", "messaging", "onion-routing", "x25519", "chacha20-poly1305", "base32", "sqlite"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
    "Topic :: Security :: Cryptography",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["pcomm"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
