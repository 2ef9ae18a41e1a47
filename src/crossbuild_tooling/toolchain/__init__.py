"""Toolchain configuration per resolved target and the merged cross environment."""

from .configurator import (
    ToolchainConfig,
    cc_env_name,
    configure,
    find_compiler,
    linker_env_name,
    rustflags_env_name,
)
from .environment import cross_environment, merge_environments, render_json, render_shell

__all__ = [
    "ToolchainConfig",
    "cc_env_name",
    "configure",
    "cross_environment",
    "find_compiler",
    "linker_env_name",
    "merge_environments",
    "render_json",
    "render_shell",
    "rustflags_env_name",
]
