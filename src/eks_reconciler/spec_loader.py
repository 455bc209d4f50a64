"""Desired spec loading with validation.

SECURITY: File size is checked before reading to avoid loading huge files.
Input validation is performed at the boundary; the engine only ever sees a
validated ClusterSpec.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .errors import ConfigurationError
from .models import ClusterSpec

logger = logging.getLogger(__name__)


class SpecLoadError(ConfigurationError):
    """Raised when spec loading or validation fails."""

    pass


def parse_cluster_spec(raw_data: Any, source: str = "<memory>") -> ClusterSpec:
    """Validate already-parsed YAML data into a ClusterSpec.

    Accepts both the flat format and a Kubernetes-style wrapper
    (apiVersion/kind/metadata/spec), in which case the spec section is used.

    Raises:
        SpecLoadError: If the data is not a mapping or fails validation.
    """
    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec must contain a YAML mapping: {source}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        spec_data = raw_data.get("spec", {})
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {source}")
    else:
        spec_data = raw_data

    try:
        return ClusterSpec.model_validate(spec_data)
    except ValidationError as e:
        # Format Pydantic validation errors for readability
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {source}:\n{error_list}") from e


def load_cluster_spec(spec_path: Path) -> ClusterSpec:
    """Load and validate the desired cluster spec from YAML.

    Args:
        spec_path: Path to the spec file.

    Returns:
        Validated ClusterSpec.

    Raises:
        SpecLoadError: If the spec cannot be loaded or fails validation.
    """
    if not spec_path.exists():
        raise SpecLoadError(f"Spec file not found: {spec_path}")

    try:
        file_size = spec_path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat spec file {spec_path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {spec_path}"
        )

    try:
        content = spec_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read spec file {spec_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise SpecLoadError(f"Spec file is not valid UTF-8: {spec_path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {spec_path}: {e}") from e

    spec = parse_cluster_spec(raw_data, str(spec_path))

    logger.info(
        "Loaded cluster spec for project '%s' from %s",
        spec.project_name,
        spec_path,
        extra={"node_groups": sorted(spec.aws.node_groups)},
    )
    return spec
