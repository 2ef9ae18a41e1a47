"""Two-phase cargo build per target: cached dependency layer, then the binary, then a standalone check.

Store layout under cache_dir:
- deps/<deps_key>/target: cargo target dir after building only dependencies (dummy source)
- artifacts/<artifact_key>/bin/<binary>: verified binary, plus artifact.json
- work/: scratch build directories, removed after each phase

deps_key = (triple, profile, vendor key, manifests); artifact_key = (deps_key, source tree hash).
Entries are published by rename and never mutated.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import tempfile
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from crossbuild_tooling.build.project import (
    SourceProject,
    manifest_parts,
    source_tree_hash,
    write_dummy_source,
)
from crossbuild_tooling.build.verify import VerificationResult, require_standalone
from crossbuild_tooling.config import PlatformOverride
from crossbuild_tooling.errors import BuildCancelled, CompileError
from crossbuild_tooling.helpers import discard_dir, publish_dir, sha256_parts, staging_dir
from crossbuild_tooling.targets.resolver import ResolvedTarget
from crossbuild_tooling.toolchain.configurator import ToolchainConfig, rustflags_env_name
from crossbuild_tooling.vendor.cache import VendorCacheEntry

log = logging.getLogger(__name__)

CargoRunner = Callable[
    [list[str], Path, Mapping[str, str], threading.Event | None],
    subprocess.CompletedProcess,
]

POLL_SECONDS = 0.5
TERMINATE_GRACE_SECONDS = 10
VENDOR_REMAP = "/vendor"


def run_cargo(
    cmd: list[str],
    cwd: Path,
    env: Mapping[str, str],
    cancel: threading.Event | None = None,
) -> subprocess.CompletedProcess:
    """Run cmd with an explicit env; terminate it and raise BuildCancelled if cancel gets set."""
    proc = subprocess.Popen(
        cmd,
        cwd=str(cwd),
        env=dict(env),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    while True:
        try:
            out, err = proc.communicate(timeout=POLL_SECONDS)
            break
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.is_set():
                proc.terminate()
                try:
                    proc.communicate(timeout=TERMINATE_GRACE_SECONDS)
                except subprocess.TimeoutExpired:
                    proc.kill()
                    proc.communicate()
                msg = f"Cancelled: {' '.join(cmd)}"
                raise BuildCancelled(msg) from None
    return subprocess.CompletedProcess(cmd, proc.returncode, out, err)


@dataclass(frozen=True)
class BuildArtifact:
    target: ResolvedTarget
    deps_key: str
    deps_layer: Path
    artifact_key: str
    binary: Path
    verification: VerificationResult
    deps_cached: bool = False
    artifact_cached: bool = False


def _check_cancel(cancel: threading.Event | None, what: str) -> None:
    if cancel is not None and cancel.is_set():
        msg = f"Cancelled before {what}"
        raise BuildCancelled(msg)


class BuildPipeline:
    def __init__(
        self,
        cache_dir: Path,
        *,
        profile: str = "release",
        store_prefixes: Sequence[str] = (),
        platform_overrides: Sequence[PlatformOverride] = (),
        cargo: str = "cargo",
        runner: CargoRunner | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.profile = profile
        self.store_prefixes = (str(self.cache_dir), *store_prefixes)
        self.platform_overrides = tuple(platform_overrides)
        self.cargo = cargo
        self.runner = runner or run_cargo
        self.base_env = base_env

    # --- Keys ---

    def deps_key(self, target: ResolvedTarget, vendor: VendorCacheEntry, project: SourceProject) -> str:
        return sha256_parts(
            (
                "crossbuild-deps-v1",
                target.toolchain_target_id,
                self.profile,
                vendor.key,
                project.manifest.relative_to(project.root).as_posix(),
                *manifest_parts(project.root, exclude=[self.cache_dir]),
            )
        )

    def artifact_key(self, deps_key: str, project: SourceProject) -> str:
        return sha256_parts(
            (
                "crossbuild-artifact-v1",
                deps_key,
                project.binary_name,
                source_tree_hash(project.root, exclude=[self.cache_dir]),
            )
        )

    def deps_dir(self, key: str) -> Path:
        return self.cache_dir / "deps" / key

    def artifact_dir(self, key: str) -> Path:
        return self.cache_dir / "artifacts" / key

    # --- Environment ---

    def target_env(
        self,
        target: ResolvedTarget,
        toolchain: ToolchainConfig,
        vendor: VendorCacheEntry,
    ) -> dict[str, str]:
        """Subprocess env for one target. Built fresh per call; os.environ is only read."""
        env = dict(self.base_env if self.base_env is not None else os.environ)
        env.update(toolchain.env)
        env["TARGET_CC"] = toolchain.cc

        flags: list[str] = []
        inherited = env.pop("RUSTFLAGS", "").split()
        env.pop("CARGO_ENCODED_RUSTFLAGS", None)
        flags += inherited
        flags.append(f"--remap-path-prefix={vendor.path}={VENDOR_REMAP}")
        tool_dirs: list[str] = []
        for o in self.platform_overrides:
            if not o.matches(target.system):
                continue
            flags += [f"-l{inp}" for inp in o.link_inputs]
            tool_dirs += list(o.build_tools)
        key = rustflags_env_name(target)
        existing = env.get(key, "").split()
        env[key] = " ".join([*existing, *flags])
        if tool_dirs:
            env["PATH"] = os.pathsep.join([*tool_dirs, env.get("PATH", "")]).rstrip(os.pathsep)
        return env

    def cargo_command(self, target: ResolvedTarget, vendor: VendorCacheEntry, manifest: Path) -> list[str]:
        cmd = [
            self.cargo,
            "build",
            "--locked",
            "--offline",
            "--target",
            target.toolchain_target_id,
            "--config",
            str(vendor.config_path),
            "--manifest-path",
            str(manifest),
        ]
        if self.profile == "release":
            cmd.append("--release")
        return cmd

    def _cargo(
        self,
        phase: str,
        target: ResolvedTarget,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str],
        cancel: threading.Event | None,
    ) -> None:
        log.info("%s build for %s: %s", phase, target.toolchain_target_id, " ".join(cmd))
        try:
            r = self.runner(cmd, cwd, env, cancel)
        except FileNotFoundError as e:
            raise CompileError(phase, target.toolchain_target_id, str(e)) from e
        if r.returncode != 0:
            raise CompileError(phase, target.toolchain_target_id, r.stderr or r.stdout or "", r.returncode)

    # --- Phases ---

    def build_deps(
        self,
        target: ResolvedTarget,
        toolchain: ToolchainConfig,
        vendor: VendorCacheEntry,
        project: SourceProject,
        cancel: threading.Event | None = None,
    ) -> tuple[str, Path, bool]:
        """Phase 1. Returns (deps_key, layer dir, cache hit)."""
        key = self.deps_key(target, vendor, project)
        final = self.deps_dir(key)
        if (final / "target").is_dir():
            log.debug("Deps layer hit %s for %s", key, target.system)
            return key, final, True
        _check_cancel(cancel, "dependency build")

        tmp = staging_dir(final)
        try:
            dummy = tmp / "source"
            write_dummy_source(project.root, dummy, exclude=[self.cache_dir])
            env = self.target_env(target, toolchain, vendor)
            env["CARGO_TARGET_DIR"] = str(tmp / "target")
            manifest = dummy / project.manifest.relative_to(project.root)
            self._cargo("dependencies", target, self.cargo_command(target, vendor, manifest), dummy, env, cancel)
            (tmp / "target").mkdir(exist_ok=True)
            shutil.rmtree(dummy)
        except BaseException:
            discard_dir(tmp)
            raise
        publish_dir(tmp, final)
        return key, final, False

    def build_artifact(
        self,
        target: ResolvedTarget,
        toolchain: ToolchainConfig,
        vendor: VendorCacheEntry,
        project: SourceProject,
        deps_key: str,
        deps_layer: Path,
        cancel: threading.Event | None = None,
    ) -> tuple[str, Path, VerificationResult, bool]:
        """Phase 2 plus verification. Returns (artifact_key, binary, verification, cache hit)."""
        key = self.artifact_key(deps_key, project)
        final = self.artifact_dir(key)
        binary = final / "bin" / project.binary_name
        if binary.is_file():
            log.debug("Artifact hit %s for %s", key, target.system)
            return key, binary, require_standalone(binary, self.store_prefixes), True
        _check_cancel(cancel, "artifact build")

        tmp = staging_dir(final)
        work_root = self.cache_dir / "work"
        work_root.mkdir(parents=True, exist_ok=True)
        try:
            with tempfile.TemporaryDirectory(dir=work_root, prefix=f"{target.system}-") as work:
                target_dir = Path(work) / "target"
                shutil.copytree(deps_layer / "target", target_dir, symlinks=True)
                env = self.target_env(target, toolchain, vendor)
                env["CARGO_TARGET_DIR"] = str(target_dir)
                self._cargo(
                    "artifact",
                    target,
                    self.cargo_command(target, vendor, project.manifest),
                    project.root,
                    env,
                    cancel,
                )
                built = target_dir / target.toolchain_target_id / self.profile / project.binary_name
                if not built.is_file():
                    raise CompileError(
                        "artifact",
                        target.toolchain_target_id,
                        f"cargo succeeded but {built} was not produced",
                    )
                out = tmp / "bin" / project.binary_name
                out.parent.mkdir(parents=True)
                shutil.copy2(built, out)
            result = require_standalone(tmp / "bin" / project.binary_name, self.store_prefixes)
            (tmp / "artifact.json").write_text(
                json.dumps(
                    {
                        "system": target.system,
                        "triple": target.toolchain_target_id,
                        "deps_key": deps_key,
                        "binary": project.binary_name,
                        "requisites": list(result.requisites),
                    },
                    indent=2,
                    sort_keys=True,
                )
                + "\n"
            )
        except BaseException:
            discard_dir(tmp)
            raise
        publish_dir(tmp, final)
        return key, binary, VerificationResult(binary, result.requisites, result.offending), False

    def build(
        self,
        target: ResolvedTarget,
        toolchain: ToolchainConfig,
        vendor: VendorCacheEntry,
        project: SourceProject,
        cancel: threading.Event | None = None,
    ) -> BuildArtifact:
        """Phase 1, then Phase 2 and the standalone check.

        Raises CompileError, NonStandaloneArtifact or BuildCancelled.
        """
        deps_key, layer, deps_hit = self.build_deps(target, toolchain, vendor, project, cancel)
        _check_cancel(cancel, "artifact build")
        art_key, binary, result, art_hit = self.build_artifact(
            target, toolchain, vendor, project, deps_key, layer, cancel
        )
        return BuildArtifact(
            target=target,
            deps_key=deps_key,
            deps_layer=layer,
            artifact_key=art_key,
            binary=binary,
            verification=result,
            deps_cached=deps_hit,
            artifact_cached=art_hit,
        )
