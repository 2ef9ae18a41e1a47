"""crossbuild.yaml loading.

Config YAML format (all keys optional; paths relative to the project root):
- package_manifest: Cargo.toml of the crate to build (default: Cargo.toml)
- binary_name: binary produced by the crate (default: [package].name)
- host: host system, e.g. x86_64-linux (default: detected)
- systems: requested systems; non-host systems outside cross_families are skipped
- cross_families: substrings of systems eligible for cross builds (default: [linux])
- cache_dir: vendor/deps/artifact store (env CROSSBUILD_CACHE_DIR overrides)
- store_prefixes: extra path prefixes a standalone binary must not reference
- max_workers: parallel target builds
- profile: release | debug
- include_std_lock: also vendor the rust-src standard library Cargo.lock
- toolchains: map triple -> C compiler/linker path
- platform_overrides: list of { family, link_inputs, build_tools }
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from crossbuild_tooling.errors import ConfigurationError

log = logging.getLogger(__name__)

CONFIG_FILE_NAME = "crossbuild.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "package_manifest": "Cargo.toml",
    "binary_name": None,
    "host": None,
    "systems": ["x86_64-linux", "aarch64-linux", "x86_64-darwin", "aarch64-darwin"],
    "cross_families": ["linux"],
    "cache_dir": None,
    "store_prefixes": [],
    "max_workers": 4,
    "profile": "release",
    "include_std_lock": True,
    "toolchains": {},
    "platform_overrides": [
        {"family": "darwin", "link_inputs": ["framework=Security"], "build_tools": []},
    ],
}


@dataclass(frozen=True)
class PlatformOverride:
    """Extra native inputs appended only for systems containing family."""

    family: str
    link_inputs: tuple[str, ...] = ()
    build_tools: tuple[str, ...] = ()

    def matches(self, system: str) -> bool:
        return self.family in system


@dataclass(frozen=True)
class CrossBuildConfig:
    project_root: Path
    package_manifest: Path
    binary_name: str | None
    host: str | None
    systems: tuple[str, ...]
    cross_families: tuple[str, ...]
    cache_dir: Path
    store_prefixes: tuple[str, ...]
    max_workers: int
    profile: str
    include_std_lock: bool
    toolchains: MappingProxyType
    platform_overrides: tuple[PlatformOverride, ...]

    def overrides_for(self, system: str) -> tuple[PlatformOverride, ...]:
        return tuple(o for o in self.platform_overrides if o.matches(system))


def default_cache_dir() -> Path:
    """$XDG_CACHE_HOME/crossbuild, or ~/.cache/crossbuild."""
    xdg = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".cache"
    return base / "crossbuild"


def _as_str_tuple(data: dict[str, Any], key: str) -> tuple[str, ...]:
    val = data.get(key)
    if val is None:
        return ()
    if isinstance(val, str):
        return (val,)
    if not isinstance(val, list):
        msg = f"{key} must be a list of strings, got {type(val).__name__}"
        raise ConfigurationError(msg)
    return tuple(str(v) for v in val)


def _parse_overrides(raw: Any) -> tuple[PlatformOverride, ...]:
    if not raw:
        return ()
    if not isinstance(raw, list):
        msg = "platform_overrides must be a list"
        raise ConfigurationError(msg)
    out: list[PlatformOverride] = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("family"):
            msg = f"platform_overrides entry needs a family: {item!r}"
            raise ConfigurationError(msg)
        out.append(
            PlatformOverride(
                family=str(item["family"]),
                link_inputs=_as_str_tuple(item, "link_inputs"),
                build_tools=_as_str_tuple(item, "build_tools"),
            )
        )
    return tuple(out)


def resolve_config(data: dict[str, Any] | None, project_root: Path) -> CrossBuildConfig:
    """Merge data over DEFAULT_CONFIG (unknown keys ignored) and resolve paths against project_root."""
    merged = dict(DEFAULT_CONFIG)
    if data:
        unknown = sorted(k for k in data if k not in merged)
        if unknown:
            log.debug("Ignoring unknown config keys: %s", ", ".join(unknown))
        merged.update({k: v for k, v in data.items() if k in merged})

    root = project_root.resolve()
    env_cache = os.environ.get("CROSSBUILD_CACHE_DIR")
    if env_cache:
        cache_dir = Path(env_cache).expanduser()
    elif merged["cache_dir"]:
        cache_dir = Path(str(merged["cache_dir"])).expanduser()
        if not cache_dir.is_absolute():
            cache_dir = root / cache_dir
    else:
        cache_dir = default_cache_dir()

    profile = str(merged["profile"])
    if profile not in ("release", "debug"):
        msg = f"profile must be release or debug, got {profile!r}"
        raise ConfigurationError(msg)

    try:
        max_workers = int(merged["max_workers"])
    except (TypeError, ValueError) as e:
        msg = f"max_workers must be an integer, got {merged['max_workers']!r}"
        raise ConfigurationError(msg) from e
    if max_workers < 1:
        msg = "max_workers must be >= 1"
        raise ConfigurationError(msg)

    toolchains = merged["toolchains"] or {}
    if not isinstance(toolchains, dict):
        msg = "toolchains must map target triples to compiler paths"
        raise ConfigurationError(msg)

    return CrossBuildConfig(
        project_root=root,
        package_manifest=root / str(merged["package_manifest"]),
        binary_name=merged["binary_name"] or None,
        host=merged["host"] or None,
        systems=_as_str_tuple(merged, "systems"),
        cross_families=_as_str_tuple(merged, "cross_families"),
        cache_dir=cache_dir.resolve(),
        store_prefixes=_as_str_tuple(merged, "store_prefixes"),
        max_workers=max_workers,
        profile=profile,
        include_std_lock=bool(merged["include_std_lock"]),
        toolchains=MappingProxyType({str(k): str(v) for k, v in toolchains.items()}),
        platform_overrides=_parse_overrides(merged["platform_overrides"]),
    )


def load_config(project_root: Path, config_path: Path | None = None) -> CrossBuildConfig:
    """Load crossbuild.yaml (or config_path) from project_root; defaults apply when the file is absent."""
    path = config_path if config_path is not None else project_root / CONFIG_FILE_NAME
    data: dict[str, Any] | None = None
    if path.is_file():
        try:
            with path.open() as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            msg = f"Invalid YAML in {path}: {e}"
            raise ConfigurationError(msg) from e
        if not isinstance(data, dict):
            msg = f"{path} must contain a mapping at top level"
            raise ConfigurationError(msg)
    elif config_path is not None:
        msg = f"Config file not found: {config_path}"
        raise ConfigurationError(msg)
    return resolve_config(data, project_root)
