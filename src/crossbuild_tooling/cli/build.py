"""`crossbuild build`: vendor once, then two-phase build + standalone check per target."""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace

from crossbuild_tooling.build.runner import run_pipeline
from crossbuild_tooling.cli.parse_common import add_common_args, config_from_args
from crossbuild_tooling.errors import CompileError, CrossBuildError, NonStandaloneArtifact


def run_build(args: argparse.Namespace) -> int:
    try:
        config = config_from_args(args)
        if args.jobs is not None:
            config = replace(config, max_workers=max(1, args.jobs))
        if args.debug:
            config = replace(config, profile="debug")
        print("🔨 Building for all eligible targets...")
        report = run_pipeline(config, requested=args.systems, host=args.host)
    except CrossBuildError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    print(f"Targets: {', '.join(report.systems)}")
    for system, artifact in report.artifacts.items():
        cached = " (cached)" if artifact.artifact_cached else ""
        print(f"  ✅ {system}: {artifact.binary}{cached}")
    for system, err in report.failures.items():
        print(f"  ❌ {system}: {type(err).__name__}", file=sys.stderr)
        if isinstance(err, NonStandaloneArtifact):
            for o in err.offending:
                print(f"     - {o}", file=sys.stderr)
        elif isinstance(err, CompileError):
            print(err.diagnostic, file=sys.stderr)
        else:
            print(f"     {err}", file=sys.stderr)
    if not report.ok:
        return 1
    print("🎉 All targets built!")
    return 0


def run_build_argv(argv: list[str] | None = None) -> None:
    """Parse argv and run the cross build (--systems, --host, --jobs, --debug)."""
    if argv is None:
        argv = sys.argv[2:] if len(sys.argv) > 2 else []  # skip 'crossbuild build'
    ap = argparse.ArgumentParser(description="Cross-target two-phase cargo build")
    add_common_args(ap)
    ap.add_argument("--jobs", "-j", type=int, default=None, help="Parallel target builds")
    ap.add_argument("--debug", action="store_true", help="Debug profile instead of release")
    sys.exit(run_build(ap.parse_args(argv)))
