"""Per-target C compiler/linker lookup and the cargo env that selects it."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from crossbuild_tooling.errors import ToolchainUnavailable
from crossbuild_tooling.targets.platforms import cc_target_prefix
from crossbuild_tooling.targets.resolver import ResolvedTarget

log = logging.getLogger(__name__)

CC_NAMES = ("cc", "gcc")


def linker_env_name(target: ResolvedTarget) -> str:
    return f"CARGO_TARGET_{target.env_key_suffix}_LINKER"


def cc_env_name(target: ResolvedTarget) -> str:
    """Uppercased CC_<TRIPLE>. cc-rs matches only the exact-case triple name, so builds also set TARGET_CC."""
    return f"CC_{target.env_key_suffix}"


def rustflags_env_name(target: ResolvedTarget) -> str:
    return f"CARGO_TARGET_{target.env_key_suffix}_RUSTFLAGS"


@dataclass(frozen=True)
class ToolchainConfig:
    target: ResolvedTarget
    cc: str
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


def find_compiler(
    target: ResolvedTarget,
    host: str,
    *,
    overrides: Mapping[str, str] | None = None,
    search_path: str | None = None,
) -> str:
    """Resolve the C compiler/linker for target. An override for the triple wins over PATH lookup."""
    tried: list[str] = []
    override = (overrides or {}).get(target.toolchain_target_id)
    if override:
        found = shutil.which(override, path=search_path)
        if found:
            return found
        tried.append(override)

    prefix = cc_target_prefix(target.system, host)
    for name in CC_NAMES:
        candidate = f"{prefix}{name}"
        found = shutil.which(candidate, path=search_path)
        if found:
            return found
        tried.append(candidate)
    raise ToolchainUnavailable(target.toolchain_target_id, tried)


def configure(
    target: ResolvedTarget,
    *,
    host: str,
    overrides: Mapping[str, str] | None = None,
    search_path: str | None = None,
) -> ToolchainConfig:
    """Build the ToolchainConfig for target: compiler path plus linker and CC selection vars.

    Raises ToolchainUnavailable when no compiler is found.
    """
    cc = find_compiler(target, host, overrides=overrides, search_path=search_path)
    log.debug("Toolchain for %s: %s", target.toolchain_target_id, cc)
    env = {
        linker_env_name(target): cc,
        cc_env_name(target): cc,
    }
    return ToolchainConfig(target=target, cc=cc, env=MappingProxyType(env))
