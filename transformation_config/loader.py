"""
Configuration Loader (``transformation_config.loader``).

Responsibility
--------------
Loads YAML configuration files and extracts the ``transformation`` section
as a plain dict.  Typed parsing happens in
``transformation_modules.transformation.config.TransformationConfig``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on kernel,
modules, or engines.

Invariants enforced
-------------------
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* A document whose root or ``transformation`` section is not a mapping
  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

SECTION_KEY = "transformation"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML document is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document root is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: configuration root must be a mapping")
    return data


def extract_section(data: dict[str, Any], key: str = SECTION_KEY) -> dict[str, Any]:
    """
    Return ``data[key]`` if present, otherwise the whole document.

    A file may either hold the settings at top level or nest them under
    ``transformation:`` next to other applications' sections.
    """
    if key not in data:
        return dict(data)
    section = data[key] or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{key}' section must be a mapping")
    return dict(section)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
