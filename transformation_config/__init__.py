"""
transformation_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the one place that reads configuration files
    or the ``TRANSFORMATION_CONFIG`` environment variable.  It returns the
    raw ``transformation`` settings section together with its checksum and
    source path; ``TransformationConfig.from_active()`` turns that into the
    typed module config.

Architecture position:
    Configuration -- sits above ``transformation_kernel`` and below
    ``transformation_modules`` / ``transformation_api``.  The kernel never
    imports from here.

Failure modes:
    - ``FileNotFoundError`` -- TRANSFORMATION_CONFIG names a missing file.
    - ``yaml.YAMLError`` / ``ValueError`` -- malformed configuration.

Audit relevance:
    Every call emits a ``CONFIG_TRACE`` log entry with the source and
    checksum, tying an execution to the exact settings that governed it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from transformation_config.loader import compute_checksum, extract_section, load_yaml_file

_logger = logging.getLogger("transformation_kernel.config")

ENV_VAR = "TRANSFORMATION_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


@dataclass(frozen=True)
class ActiveConfig:
    """The loaded settings section and where it came from."""

    settings: dict[str, Any] = field(default_factory=dict)
    checksum: str = ""
    source: str = ""


def get_active_config(config_path: Path | str | None = None) -> ActiveConfig:
    """Load the active settings.

    Resolution order: explicit ``config_path``, then ``$TRANSFORMATION_CONFIG``,
    then the packaged ``defaults.yaml``.
    """
    raw = config_path or os.environ.get(ENV_VAR) or DEFAULT_CONFIG_PATH
    path = Path(raw)
    settings = extract_section(load_yaml_file(path))
    checksum = compute_checksum(settings)

    _logger.info(
        "CONFIG_TRACE",
        extra={
            "trace_type": "CONFIG_TRACE",
            "source": str(path),
            "checksum": checksum,
            "keys": sorted(settings.keys()),
        },
    )
    return ActiveConfig(settings=settings, checksum=checksum, source=str(path))


__all__ = [
    "ActiveConfig",
    "DEFAULT_CONFIG_PATH",
    "ENV_VAR",
    "compute_checksum",
    "extract_section",
    "get_active_config",
    "load_yaml_file",
]
