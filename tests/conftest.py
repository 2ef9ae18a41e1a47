"""Pytest fixtures for crossbuild tooling tests: a tiny cargo project, fake fetcher, fake cargo."""

from __future__ import annotations

import subprocess
import threading
import time
import tomllib
from pathlib import Path

import pytest

from crossbuild_tooling.errors import VendorFetchError
from crossbuild_tooling.vendor.fetch import write_checksum_file

CRATES_IO = "registry+https://github.com/rust-lang/crates.io-index"

LOCK_V3 = f"""# This file is automatically @generated by Cargo.
version = 3

[[package]]
name = "demo"
version = "0.1.0"
dependencies = [
 "itoa",
 "serde",
]

[[package]]
name = "itoa"
version = "1.0.11"
source = "{CRATES_IO}"
checksum = "49f1f14873335454500d59611f1cf4a4b0f786f9ac11f4312a78e4cf2566695b"

[[package]]
name = "serde"
version = "1.0.203"
source = "{CRATES_IO}"
checksum = "7253ab4de971e72fb7be983802300c30b5a7f0c2e56fab8abfc6a214307c0094"
"""


def write_executable(path: Path, content: str = "#!/bin/sh\nexit 0\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    path.chmod(0o755)
    return path


@pytest.fixture
def cargo_project(tmp_path: Path) -> Path:
    """Minimal binary crate with a Cargo.lock locking two crates.io packages. Returns project root."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "Cargo.toml").write_text(
        '[package]\nname = "demo"\nversion = "0.1.0"\nedition = "2021"\n\n'
        '[dependencies]\nserde = "1"\nitoa = "1"\n'
    )
    (root / "Cargo.lock").write_text(LOCK_V3)
    (root / "src" / "main.rs").write_text('fn main() { println!("hello"); }\n')
    (root / ".gitignore").write_text("/target\n*.log\n")
    return root


class CountingFetcher:
    """Fetcher double: records every fetch, optionally slow or failing for one crate name."""

    def __init__(self, delay: float = 0.0, fail_on: str | None = None) -> None:
        self.delay = delay
        self.fail_on = fail_on
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def fetch(self, package, dest: Path, scratch: Path) -> None:
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.calls.append(package.dir_name)
        if package.name == self.fail_on:
            msg = f"simulated failure for {package.name}"
            raise VendorFetchError(msg)
        (dest / "src").mkdir(parents=True)
        (dest / "Cargo.toml").write_text(
            f'[package]\nname = "{package.name}"\nversion = "{package.version}"\n'
        )
        (dest / "src" / "lib.rs").write_text(f"// {package.name}\n")
        write_checksum_file(dest, package.checksum)


class FakeCargo:
    """CargoRunner double: writes target/<triple>/<profile>/<crate name> with binary_bytes."""

    def __init__(self, binary_bytes: bytes = b"standalone binary\x00", returncode: int = 0, stderr: str = "") -> None:
        self.binary_bytes = binary_bytes
        self.returncode = returncode
        self.stderr = stderr
        self.calls: list[tuple[list[str], Path, dict[str, str]]] = []
        self._lock = threading.Lock()

    def __call__(self, cmd, cwd, env, cancel=None) -> subprocess.CompletedProcess:
        with self._lock:
            self.calls.append((list(cmd), Path(cwd), dict(env)))
        if self.returncode == 0:
            target_dir = Path(env["CARGO_TARGET_DIR"])
            triple = cmd[cmd.index("--target") + 1]
            profile = "release" if "--release" in cmd else "debug"
            manifest = Path(cmd[cmd.index("--manifest-path") + 1])
            name = tomllib.loads(manifest.read_text())["package"]["name"]
            out = target_dir / triple / profile
            (out / "deps").mkdir(parents=True, exist_ok=True)
            (out / "deps" / "libserde.rlib").write_text("rlib")
            (out / name).write_bytes(self.binary_bytes)
        return subprocess.CompletedProcess(cmd, self.returncode, "", self.stderr)

    def calls_in(self, cwd: Path) -> int:
        return sum(1 for _cmd, c, _env in self.calls if c == cwd)


@pytest.fixture
def counting_fetcher() -> CountingFetcher:
    return CountingFetcher()


@pytest.fixture
def fake_cargo() -> FakeCargo:
    return FakeCargo()


@pytest.fixture
def toolchain_bin(tmp_path: Path) -> Path:
    """Directory with host cc and aarch64 musl cross cc executables."""
    d = tmp_path / "toolchain-bin"
    write_executable(d / "cc")
    write_executable(d / "aarch64-unknown-linux-musl-cc")
    return d
