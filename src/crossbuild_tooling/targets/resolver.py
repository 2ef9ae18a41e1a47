"""Target matrix resolution: which requested systems are buildable from this host."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from crossbuild_tooling.errors import ConfigurationError
from crossbuild_tooling.helpers import to_env_key
from crossbuild_tooling.targets.platforms import rust_target_triple

log = logging.getLogger(__name__)

DEFAULT_CROSS_FAMILIES: tuple[str, ...] = ("linux",)

EligibilityPredicate = Callable[[str, str], bool]


@dataclass(frozen=True)
class TargetPlatform:
    system: str
    is_host: bool = False


@dataclass(frozen=True)
class ResolvedTarget:
    platform: TargetPlatform
    toolchain_target_id: str
    env_key_suffix: str

    @property
    def system(self) -> str:
        return self.platform.system

    @property
    def is_host(self) -> bool:
        return self.platform.is_host


def family_allow_list(families: Iterable[str] = DEFAULT_CROSS_FAMILIES) -> EligibilityPredicate:
    """Predicate: system is the host, or contains one of families (e.g. "linux")."""
    allowed = tuple(families)

    def _eligible(system: str, host: str) -> bool:
        return system == host or any(f in system for f in allowed)

    return _eligible


def resolve_target(platform: TargetPlatform) -> ResolvedTarget:
    triple = rust_target_triple(platform.system)
    return ResolvedTarget(
        platform=platform,
        toolchain_target_id=triple,
        env_key_suffix=to_env_key(triple),
    )


def resolve(
    host: TargetPlatform,
    requested: Sequence[str],
    *,
    allow: EligibilityPredicate | None = None,
) -> tuple[ResolvedTarget, ...]:
    """Resolve the build matrix: host first, then eligible requested systems in order, deduplicated.

    Ineligible systems are skipped, not reported as errors. Raises ConfigurationError when two
    distinct systems normalize to the same env key suffix.
    """
    eligible = allow or family_allow_list()
    host_platform = TargetPlatform(host.system, is_host=True)
    systems: list[str] = [host_platform.system]
    for system in requested:
        if system in systems:
            continue
        if not eligible(system, host_platform.system):
            log.debug("Skipping %s: not the host and not an allowed cross family", system)
            continue
        systems.append(system)

    matrix: list[ResolvedTarget] = []
    by_suffix: dict[str, str] = {}
    for system in systems:
        target = resolve_target(TargetPlatform(system, is_host=system == host_platform.system))
        other = by_suffix.get(target.env_key_suffix)
        if other is not None:
            msg = (
                f"Platforms {other!r} and {system!r} both normalize to env key "
                f"{target.env_key_suffix!r}"
            )
            raise ConfigurationError(msg)
        by_suffix[target.env_key_suffix] = system
        matrix.append(target)
    return tuple(matrix)


def cargo_targets(matrix: Iterable[ResolvedTarget]) -> list[str]:
    """Rust triples of a matrix, in matrix order (for rustup target add / dev shells)."""
    return [t.toolchain_target_id for t in matrix]
