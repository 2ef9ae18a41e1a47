"""`crossbuild matrix` and `crossbuild env`: resolved targets and the merged cross environment."""

from __future__ import annotations

import argparse
import json
import sys

from crossbuild_tooling.build.runner import configure_matrix, resolve_matrix
from crossbuild_tooling.cli.parse_common import add_common_args, config_from_args
from crossbuild_tooling.errors import CrossBuildError
from crossbuild_tooling.toolchain.environment import cross_environment, render_json, render_shell

ENV_EPILOG = """\
Per target this prints CARGO_TARGET_<TRIPLE>_LINKER and CC_<TRIPLE>, with <TRIPLE>
uppercased and non-alphanumerics turned into underscores.

The cc crate (cc-rs) only reads the exact-case CC_<triple> name, for example
CC_aarch64_unknown_linux_musl, so CC_AARCH64_UNKNOWN_LINUX_MUSL from this shell is
not picked up by build scripts. `crossbuild build` also sets TARGET_CC for each
target; export TARGET_CC yourself when running a single-target cargo build by hand.
"""


def run_matrix(args: argparse.Namespace) -> int:
    try:
        config = config_from_args(args)
        matrix = resolve_matrix(config, args.systems, args.host)
    except CrossBuildError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    if args.format == "json":
        rows = [
            {
                "system": t.system,
                "triple": t.toolchain_target_id,
                "env_key_suffix": t.env_key_suffix,
                "host": t.is_host,
            }
            for t in matrix
        ]
        print(json.dumps(rows, indent=2))
        return 0
    for t in matrix:
        host = " (host)" if t.is_host else ""
        print(f"{t.system}\t{t.toolchain_target_id}{host}")
    return 0


def run_env(args: argparse.Namespace) -> int:
    try:
        config = config_from_args(args)
        matrix = resolve_matrix(config, args.systems, args.host)
    except CrossBuildError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    configs, failures = configure_matrix(matrix, config)
    for system, err in failures.items():
        print(f"⚠️  {system}: {err}", file=sys.stderr)
    if not configs:
        print("❌ No target has a usable toolchain", file=sys.stderr)
        return 1
    env = cross_environment(configs[t.system] for t in matrix if t.system in configs)
    sys.stdout.write(render_json(env) if args.format == "json" else render_shell(env))
    return 0


def _parser(description: str, formats: tuple[str, ...], epilog: str | None = None) -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description=description,
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_common_args(ap)
    ap.add_argument("--format", choices=formats, default=formats[0])
    return ap


def run_matrix_argv(argv: list[str] | None = None) -> None:
    """Parse argv and print the resolved target matrix."""
    if argv is None:
        argv = sys.argv[2:] if len(sys.argv) > 2 else []
    args = _parser("Resolve the buildable target matrix", ("text", "json")).parse_args(argv)
    sys.exit(run_matrix(args))


def run_env_argv(argv: list[str] | None = None) -> None:
    """Parse argv and print the cross environment (shell exports or JSON)."""
    if argv is None:
        argv = sys.argv[2:] if len(sys.argv) > 2 else []
    args = _parser("Print the merged cross-toolchain environment", ("shell", "json"), ENV_EPILOG).parse_args(argv)
    sys.exit(run_env(args))
