"""Target matrix: host detection, platform naming, eligibility filtering."""

from .platforms import (
    PLATFORM_TABLE,
    cc_target_prefix,
    detect_host,
    rust_target_triple,
)
from .resolver import (
    ResolvedTarget,
    TargetPlatform,
    cargo_targets,
    family_allow_list,
    resolve,
    resolve_target,
)

__all__ = [
    "PLATFORM_TABLE",
    "ResolvedTarget",
    "TargetPlatform",
    "cargo_targets",
    "cc_target_prefix",
    "detect_host",
    "family_allow_list",
    "resolve",
    "resolve_target",
    "rust_target_triple",
]
