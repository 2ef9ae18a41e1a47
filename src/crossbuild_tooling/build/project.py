"""Source project model, source-tree hashing and the dependency-only dummy source.

The dummy source keeps every manifest (Cargo.toml, Cargo.lock, .cargo/config.toml,
rust-toolchain files) and replaces each declared build target with a stub, so the
dependency layer only rebuilds when manifests change, never on source edits.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import shutil
import tomllib
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from crossbuild_tooling.errors import ConfigurationError
from crossbuild_tooling.helpers import (
    SKIP_PARTS,
    find_manifest_files,
    sha256_file,
    sha256_parts,
)

log = logging.getLogger(__name__)

EXTRA_MANIFESTS = (
    ".cargo/config.toml",
    ".cargo/config",
    "rust-toolchain.toml",
    "rust-toolchain",
)

STUB_MAIN = "fn main() {}\n"
STUB_LIB = ""

TARGET_TABLES = ("bin", "example", "test", "bench")


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text())
    except (OSError, tomllib.TOMLDecodeError) as e:
        msg = f"Cannot read {path}: {e}"
        raise ConfigurationError(msg) from e


def _find_lockfile(manifest: Path, root: Path) -> Path:
    """Cargo.lock next to the manifest or in the nearest workspace directory up to root."""
    d = manifest.parent
    while True:
        lock = d / "Cargo.lock"
        if lock.is_file():
            return lock
        if d == root or d == d.parent:
            break
        d = d.parent
    msg = f"No Cargo.lock found for {manifest} (searched up to {root})"
    raise ConfigurationError(msg)


def _workspace_version(manifest: Path, root: Path) -> str | None:
    d = manifest.parent
    while True:
        candidate = d / "Cargo.toml"
        if candidate.is_file():
            ws = _load_toml(candidate).get("workspace") or {}
            version = (ws.get("package") or {}).get("version")
            if isinstance(version, str):
                return version
        if d == root or d == d.parent:
            return None
        d = d.parent


@dataclass(frozen=True)
class SourceProject:
    root: Path
    manifest: Path
    lockfile: Path
    name: str
    version: str
    binary_name: str

    @classmethod
    def load(
        cls,
        root: Path,
        manifest: Path | None = None,
        binary_name: str | None = None,
    ) -> SourceProject:
        """Read [package] name/version from manifest (default root/Cargo.toml); version may be workspace-inherited."""
        root = root.resolve()
        manifest = (manifest or root / "Cargo.toml").resolve()
        if not manifest.is_file():
            msg = f"{manifest} not found"
            raise ConfigurationError(msg)
        pkg = _load_toml(manifest).get("package")
        if not isinstance(pkg, dict) or not pkg.get("name"):
            msg = f"{manifest} has no [package] name"
            raise ConfigurationError(msg)
        version = pkg.get("version", "0.0.0")
        if isinstance(version, dict) and version.get("workspace"):
            version = _workspace_version(manifest, root) or "0.0.0"
        return cls(
            root=root,
            manifest=manifest,
            lockfile=_find_lockfile(manifest, root),
            name=pkg["name"],
            version=str(version),
            binary_name=binary_name or pkg["name"],
        )


# --- Ignore rules ---


def load_ignore_patterns(root: Path) -> list[str]:
    """Patterns from root/.gitignore (comments, blanks, and negations dropped)."""
    gi = root / ".gitignore"
    if not gi.is_file():
        return []
    out: list[str] = []
    for line in gi.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith(("#", "!")):
            continue
        out.append(line)
    return out


def is_ignored(rel: str, is_dir: bool, patterns: list[str]) -> bool:
    name = rel.rsplit("/", 1)[-1]
    for pat in patterns:
        dir_only = pat.endswith("/")
        p = pat.rstrip("/")
        if dir_only and not is_dir:
            continue
        if p.startswith("/") or "/" in p:
            if fnmatch.fnmatchcase(rel, p.lstrip("/")):
                return True
        elif fnmatch.fnmatchcase(name, p):
            return True
    return False


def iter_source_files(root: Path, exclude: Iterable[Path] = ()) -> Iterator[Path]:
    """Files under root in sorted order, skipping SKIP_PARTS, .gitignore matches and the exclude dirs."""
    patterns = load_ignore_patterns(root)
    skip_dirs = {Path(p).resolve() for p in exclude}
    for dirpath, dirnames, filenames in os.walk(root):
        d = Path(dirpath)
        rel_dir = d.relative_to(root).as_posix()
        kept = []
        for name in sorted(dirnames):
            rel = name if rel_dir == "." else f"{rel_dir}/{name}"
            if name in SKIP_PARTS or is_ignored(rel, True, patterns) or (d / name).resolve() in skip_dirs:
                continue
            kept.append(name)
        dirnames[:] = kept
        for name in sorted(filenames):
            rel = name if rel_dir == "." else f"{rel_dir}/{name}"
            if is_ignored(rel, False, patterns):
                continue
            yield d / name


def source_tree_hash(root: Path, exclude: Iterable[Path] = ()) -> str:
    """Hash of relative path, executable bit, and content (or link target) of every source file."""
    parts: list[str] = []
    for p in iter_source_files(root, exclude):
        rel = p.relative_to(root).as_posix()
        if p.is_symlink():
            parts += [rel, "link", os.readlink(p)]
        else:
            mode = "x" if os.access(p, os.X_OK) else "-"
            parts += [rel, mode, sha256_file(p)]
    return sha256_parts(parts)


# --- Manifests / dummy source ---


def manifest_files(root: Path, exclude: Iterable[Path] = ()) -> list[Path]:
    """Inputs of the dependency layer: all Cargo.toml/Cargo.lock plus cargo config and toolchain files."""
    files = set(find_manifest_files(root, skip_dirs=exclude))
    for extra in EXTRA_MANIFESTS:
        p = root / extra
        if p.is_file():
            files.add(p)
    return sorted(files)


def manifest_parts(root: Path, exclude: Iterable[Path] = ()) -> list[bytes | str]:
    parts: list[bytes | str] = []
    for p in manifest_files(root, exclude):
        parts += [p.relative_to(root).as_posix(), p.read_bytes()]
    return parts


def _stub_targets(crate_dir: Path, manifest: dict[str, Any]) -> dict[str, str]:
    """Relative path -> stub content for every build target the real crate declares or auto-discovers."""
    stubs: dict[str, str] = {}
    pkg = manifest.get("package") or {}

    lib = manifest.get("lib") or {}
    lib_path = lib.get("path")
    if lib_path:
        stubs[lib_path] = STUB_LIB
    elif (crate_dir / "src" / "lib.rs").is_file():
        stubs["src/lib.rs"] = STUB_LIB

    if (crate_dir / "src" / "main.rs").is_file():
        stubs["src/main.rs"] = STUB_MAIN
    bin_dir = crate_dir / "src" / "bin"
    if bin_dir.is_dir():
        for p in sorted(bin_dir.glob("*.rs")):
            stubs[f"src/bin/{p.name}"] = STUB_MAIN
        for p in sorted(bin_dir.glob("*/main.rs")):
            stubs[p.relative_to(crate_dir).as_posix()] = STUB_MAIN

    build = pkg.get("build")
    if isinstance(build, str):
        stubs[build] = STUB_MAIN
    elif build is not False and (crate_dir / "build.rs").is_file():
        stubs["build.rs"] = STUB_MAIN

    for table in TARGET_TABLES:
        for entry in manifest.get(table) or []:
            path = entry.get("path") if isinstance(entry, dict) else None
            if path:
                stubs[path] = STUB_MAIN
    return stubs


def write_dummy_source(root: Path, dest: Path, exclude: Iterable[Path] = ()) -> None:
    """Copy manifests of root into dest and stub every build target."""
    for p in manifest_files(root, exclude):
        rel = p.relative_to(root)
        out = dest / rel
        out.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(p, out)
        if p.name != "Cargo.toml":
            continue
        crate_dir = p.parent
        for stub_rel, content in _stub_targets(crate_dir, _load_toml(p)).items():
            stub = out.parent / stub_rel
            stub.parent.mkdir(parents=True, exist_ok=True)
            stub.write_text(content)
    log.debug("Dummy source for %s written to %s", root, dest)
