"""Kubernetes version upgrade path validation.

EKS upgrades the control plane one minor version at a time and never
downgrades. A version string is "major.minor"; anything else is rejected.
"""

from __future__ import annotations

from .errors import UpgradePathViolation


def parse_version(version: str) -> tuple[int, int]:
    """Split "major.minor" into integers.

    Raises:
        UpgradePathViolation: If the string is not two dot-separated integers.
    """
    parts = str(version).strip().split(".")
    if len(parts) != 2:
        raise UpgradePathViolation(
            f"version must be in format 'major.minor', got {version!r}"
        )
    try:
        major, minor = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise UpgradePathViolation(
            f"version must be in format 'major.minor', got {version!r}"
        ) from e
    if major < 0 or minor < 0:
        raise UpgradePathViolation(
            f"version must be in format 'major.minor', got {version!r}"
        )
    return major, minor


def validate_upgrade(current: str, desired: str) -> None:
    """Accept equal versions or a single minor step forward.

    Raises:
        UpgradePathViolation: On a major change, a downgrade, or a skipped minor.
    """
    cur_major, cur_minor = parse_version(current)
    des_major, des_minor = parse_version(desired)

    if cur_major != des_major:
        raise UpgradePathViolation(
            f"cannot change Kubernetes major version in-place ({current} -> {desired}). "
            "Major version upgrades require cluster recreation"
        )
    if des_minor < cur_minor:
        raise UpgradePathViolation(
            f"cannot downgrade Kubernetes version ({current} -> {desired}). "
            "Downgrades are not supported"
        )
    if des_minor > cur_minor + 1:
        raise UpgradePathViolation(
            f"cannot skip Kubernetes minor versions ({current} -> {desired}). "
            f"Upgrade to {cur_major}.{cur_minor + 1} first"
        )
