"""Whole-matrix build: resolve, configure, vendor once, then one pool task per target.

Failure scope:
- ConfigurationError, VendorFetchError: abort the whole build (raised)
- ToolchainUnavailable, CompileError, NonStandaloneArtifact, BuildCancelled: recorded for that
  target; other targets continue
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from types import MappingProxyType

from crossbuild_tooling.build.pipeline import BuildArtifact, BuildPipeline, CargoRunner
from crossbuild_tooling.build.project import SourceProject
from crossbuild_tooling.config import CrossBuildConfig
from crossbuild_tooling.errors import (
    BuildCancelled,
    CompileError,
    CrossBuildError,
    NonStandaloneArtifact,
    ToolchainUnavailable,
)
from crossbuild_tooling.targets.platforms import detect_host
from crossbuild_tooling.targets.resolver import (
    ResolvedTarget,
    TargetPlatform,
    cargo_targets,
    family_allow_list,
    resolve,
)
from crossbuild_tooling.toolchain.configurator import ToolchainConfig, configure
from crossbuild_tooling.toolchain.environment import cross_environment
from crossbuild_tooling.vendor.cache import VendorCache, VendorCacheEntry
from crossbuild_tooling.vendor.fetch import Fetcher
from crossbuild_tooling.vendor.lockfile import lock_set_for

log = logging.getLogger(__name__)

TARGET_FAILURES = (CompileError, NonStandaloneArtifact, BuildCancelled)


@dataclass(frozen=True)
class BuildReport:
    matrix: tuple[ResolvedTarget, ...]
    cross_env: Mapping[str, str]
    artifacts: Mapping[str, BuildArtifact] = field(default_factory=lambda: MappingProxyType({}))
    failures: Mapping[str, CrossBuildError] = field(default_factory=lambda: MappingProxyType({}))
    vendor: VendorCacheEntry | None = None

    @property
    def systems(self) -> list[str]:
        return [t.system for t in self.matrix]

    @property
    def cargo_targets(self) -> list[str]:
        return cargo_targets(self.matrix)

    @property
    def ok(self) -> bool:
        return not self.failures


def resolve_matrix(
    config: CrossBuildConfig,
    requested: Sequence[str] | None = None,
    host: str | None = None,
) -> tuple[ResolvedTarget, ...]:
    host_system = host or config.host or detect_host()
    return resolve(
        TargetPlatform(host_system, is_host=True),
        list(requested) if requested is not None else list(config.systems),
        allow=family_allow_list(config.cross_families),
    )


def configure_matrix(
    matrix: Sequence[ResolvedTarget],
    config: CrossBuildConfig,
    search_path: str | None = None,
) -> tuple[dict[str, ToolchainConfig], dict[str, CrossBuildError]]:
    """ToolchainConfig per system; systems without a compiler go to the failures dict."""
    host = next((t.system for t in matrix if t.is_host), "")
    configs: dict[str, ToolchainConfig] = {}
    failures: dict[str, CrossBuildError] = {}
    for target in matrix:
        try:
            configs[target.system] = configure(
                target, host=host, overrides=config.toolchains, search_path=search_path
            )
        except ToolchainUnavailable as e:
            log.warning("Skipping %s: %s", target.system, e)
            failures[target.system] = e
    return configs, failures


def run_pipeline(
    config: CrossBuildConfig,
    *,
    requested: Sequence[str] | None = None,
    host: str | None = None,
    fetcher: Fetcher | None = None,
    runner: CargoRunner | None = None,
    cancel: threading.Event | None = None,
    search_path: str | None = None,
    vendor_cache: VendorCache | None = None,
) -> BuildReport:
    matrix = resolve_matrix(config, requested, host)
    configs, failures = configure_matrix(matrix, config, search_path)
    env = cross_environment(configs[t.system] for t in matrix if t.system in configs)
    if not configs:
        return BuildReport(matrix=matrix, cross_env=env, failures=MappingProxyType(failures))

    project = SourceProject.load(config.project_root, config.package_manifest, config.binary_name)
    cache = vendor_cache or VendorCache(config.cache_dir, fetcher)
    vendor = cache.vendor(lock_set_for(project.lockfile, include_std=config.include_std_lock))

    pipeline = BuildPipeline(
        config.cache_dir,
        profile=config.profile,
        store_prefixes=config.store_prefixes,
        platform_overrides=config.platform_overrides,
        runner=runner,
    )
    artifacts: dict[str, BuildArtifact] = {}
    workers = min(config.max_workers, len(configs))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="crossbuild") as pool:
        futures = {
            system: pool.submit(pipeline.build, tc.target, tc, vendor, project, cancel)
            for system, tc in configs.items()
        }
        for system, fut in futures.items():
            try:
                artifacts[system] = fut.result()
            except TARGET_FAILURES as e:
                log.warning("Build failed for %s: %s", system, type(e).__name__)
                failures[system] = e

    return BuildReport(
        matrix=matrix,
        cross_env=env,
        artifacts=MappingProxyType(artifacts),
        failures=MappingProxyType(failures),
        vendor=vendor,
    )
