"""`crossbuild verify <binary>`: standalone check of an existing binary."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from crossbuild_tooling.build.verify import verify_standalone
from crossbuild_tooling.config import default_cache_dir


def run_verify(binary: Path, store_prefixes: list[str]) -> int:
    if not binary.is_file():
        print(f"❌ {binary} not found", file=sys.stderr)
        return 1
    result = verify_standalone(binary, store_prefixes)
    for req in result.requisites:
        print(f"  {req}")
    if not result.passed:
        print(f"❌ {binary} is not standalone:", file=sys.stderr)
        for o in result.offending:
            print(f"   - {o}", file=sys.stderr)
        return 1
    print(f"✅ {binary} is standalone")
    return 0


def run_verify_argv(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[2:] if len(sys.argv) > 2 else []
    ap = argparse.ArgumentParser(description="Check a binary references nothing inside the store")
    ap.add_argument("binary", type=Path)
    ap.add_argument(
        "--store-prefix",
        action="append",
        default=None,
        help="Store path prefix (repeatable; default: crossbuild cache dir and /nix/store)",
    )
    args = ap.parse_args(argv)
    cache_dir = os.environ.get("CROSSBUILD_CACHE_DIR") or str(default_cache_dir())
    prefixes = args.store_prefix or [cache_dir, "/nix/store"]
    sys.exit(run_verify(args.binary, prefixes))
