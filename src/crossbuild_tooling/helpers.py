"""Shared helpers for crossbuild_tooling (naming, hashing, atomic publish, Cargo file discovery).

Used by targets, toolchain, vendor, and build modules.
"""

from __future__ import annotations

import hashlib
import os
import re
import shutil
import uuid
from collections.abc import Iterable
from pathlib import Path

# --- Naming ---

_NON_ENV_CHARS = re.compile(r"[^A-Za-z0-9]")


def to_env_key(s: str) -> str:
    """Uppercase s and replace every character outside [A-Za-z0-9] with '_' (aarch64-unknown-linux-musl -> AARCH64_UNKNOWN_LINUX_MUSL)."""
    return _NON_ENV_CHARS.sub("_", s).upper()


# --- Hashing ---


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def sha256_parts(parts: Iterable[bytes | str]) -> str:
    """Hash an ordered sequence of parts. Each part is length-prefixed so concatenation is unambiguous."""
    h = hashlib.sha256()
    for part in parts:
        data = part.encode() if isinstance(part, str) else part
        h.update(f"{len(data)}:".encode())
        h.update(data)
    return h.hexdigest()


# --- Path ---

SKIP_PARTS = frozenset(
    {
        "target",
        ".git",
        ".venv",
        "venv",
        "__pycache__",
        "node_modules",
        "result",
    }
)


def find_cargo_tomls(
    root: Path,
    *,
    exclude: Iterable[str] | None = None,
    skip_dirs: Iterable[Path] = (),
) -> list[Path]:
    """All Cargo.toml under root, excluding path segments in exclude (default: SKIP_PARTS).

    Files under any of skip_dirs (compared after resolving) are left out as well.
    """
    skip = SKIP_PARTS if exclude is None else frozenset(exclude)
    dirs = [Path(d).resolve() for d in skip_dirs]
    out: list[Path] = []
    for p in root.rglob("Cargo.toml"):
        try:
            rel = p.relative_to(root)
        except ValueError:
            continue
        if any(part in skip for part in rel.parts):
            continue
        if dirs and any(p.resolve().is_relative_to(d) for d in dirs):
            continue
        out.append(p)
    return sorted(out)


def find_manifest_files(
    root: Path,
    *,
    exclude: Iterable[str] | None = None,
    skip_dirs: Iterable[Path] = (),
) -> list[Path]:
    """Every Cargo.toml and its sibling Cargo.lock under root, sorted."""
    out: list[Path] = []
    for toml in find_cargo_tomls(root, exclude=exclude, skip_dirs=skip_dirs):
        out.append(toml)
        lock = toml.parent / "Cargo.lock"
        if lock.is_file():
            out.append(lock)
    return sorted(out)


# --- Publish ---


def staging_dir(final: Path) -> Path:
    """Create and return a fresh sibling directory of final for write-then-publish."""
    final.parent.mkdir(parents=True, exist_ok=True)
    tmp = final.parent / f".tmp-{final.name}-{uuid.uuid4().hex[:12]}"
    tmp.mkdir()
    return tmp


def publish_dir(tmp: Path, final: Path) -> bool:
    """Atomically move a fully written tmp directory to final.

    Returns True if tmp was published, False if final already existed (another writer won);
    in that case tmp is removed and final is left untouched.
    """
    try:
        os.rename(tmp, final)
    except OSError:
        if final.is_dir():
            shutil.rmtree(tmp, ignore_errors=True)
            return False
        raise
    return True


def discard_dir(tmp: Path) -> None:
    shutil.rmtree(tmp, ignore_errors=True)
