"""Platform naming: "<arch>-<os>" systems to Rust target triples and C toolchain prefixes.

Linux systems map to static (musl) triples so the resulting binaries need no libc from the
build store. Unknown systems fall back to <arch>-unknown-<os>.
"""

from __future__ import annotations

import platform
import sys

from crossbuild_tooling.errors import ConfigurationError

# system -> (rust target triple, GNU config used as the cross C toolchain prefix)
PLATFORM_TABLE: dict[str, tuple[str, str]] = {
    "x86_64-linux": ("x86_64-unknown-linux-musl", "x86_64-unknown-linux-musl"),
    "aarch64-linux": ("aarch64-unknown-linux-musl", "aarch64-unknown-linux-musl"),
    "armv7l-linux": ("armv7-unknown-linux-musleabihf", "armv7l-unknown-linux-musleabihf"),
    "armv6l-linux": ("arm-unknown-linux-musleabihf", "armv6l-unknown-linux-musleabihf"),
    "i686-linux": ("i686-unknown-linux-musl", "i686-unknown-linux-musl"),
    "riscv64-linux": ("riscv64gc-unknown-linux-musl", "riscv64-unknown-linux-musl"),
    "x86_64-darwin": ("x86_64-apple-darwin", "x86_64-apple-darwin"),
    "aarch64-darwin": ("aarch64-apple-darwin", "aarch64-apple-darwin"),
}

# platform.machine() / docker-style arch names -> system arch
ARCH_ALIASES: dict[str, str] = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "arm7": "armv7l",
    "armv7": "armv7l",
    "i386": "i686",
}


def split_system(system: str) -> tuple[str, str]:
    """Split "x86_64-linux" into ("x86_64", "linux"). Raises ConfigurationError if malformed."""
    arch, sep, os_name = system.partition("-")
    if not sep or not arch or not os_name:
        msg = f"Malformed platform identifier {system!r}; expected <arch>-<os>"
        raise ConfigurationError(msg)
    return arch, os_name


def _fallback(system: str) -> tuple[str, str]:
    arch, os_name = split_system(system)
    if os_name == "linux":
        triple = f"{arch}-unknown-linux-musl"
    elif os_name == "darwin":
        triple = f"{arch}-apple-darwin"
    else:
        triple = f"{arch}-unknown-{os_name}"
    return triple, triple


def _lookup(system: str) -> tuple[str, str]:
    if system in PLATFORM_TABLE:
        return PLATFORM_TABLE[system]
    return _fallback(system)


def rust_target_triple(system: str) -> str:
    """Rust target triple used by cargo --target for system."""
    return _lookup(system)[0]


def cc_target_prefix(system: str, host: str) -> str:
    """Prefix of the C toolchain binaries: empty for the host, "<gnu-config>-" otherwise."""
    if system == host:
        return ""
    return f"{_lookup(system)[1]}-"


def detect_host() -> str:
    """Host system identifier from the running interpreter, e.g. aarch64-darwin."""
    machine = platform.machine().lower() or "x86_64"
    arch = ARCH_ALIASES.get(machine, machine)
    if sys.platform.startswith("linux"):
        os_name = "linux"
    elif sys.platform == "darwin":
        os_name = "darwin"
    elif sys.platform.startswith("freebsd"):
        os_name = "freebsd"
    elif sys.platform in ("win32", "cygwin"):
        os_name = "windows"
    else:
        os_name = sys.platform
    return f"{arch}-{os_name}"
