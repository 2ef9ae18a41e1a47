"""`crossbuild vendor`: populate (or reuse) the vendor cache entry for the project lock set."""

from __future__ import annotations

import argparse
import sys

from crossbuild_tooling.build.project import SourceProject
from crossbuild_tooling.cli.parse_common import add_common_args, config_from_args
from crossbuild_tooling.errors import CrossBuildError
from crossbuild_tooling.vendor.cache import VendorCache
from crossbuild_tooling.vendor.lockfile import lock_set_for


def run_vendor(args: argparse.Namespace) -> int:
    try:
        config = config_from_args(args)
        project = SourceProject.load(config.project_root, config.package_manifest, config.binary_name)
        include_std = config.include_std_lock and not args.no_std
        lock_set = lock_set_for(project.lockfile, include_std=include_std)
        print(f"🔨 Vendoring {len(lock_set.paths)} lock file(s) for {project.name}...")
        entry = VendorCache(config.cache_dir).vendor(lock_set)
    except CrossBuildError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    print(f"✅ Vendor entry {entry.key}")
    print(entry.path)
    return 0


def run_vendor_argv(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[2:] if len(sys.argv) > 2 else []
    ap = argparse.ArgumentParser(description="Vendor locked crates into the content-addressed cache")
    add_common_args(ap, matrix=False)
    ap.add_argument("--no-std", action="store_true", help="Skip the rust-src standard library Cargo.lock")
    sys.exit(run_vendor(ap.parse_args(argv)))
