"""Main CLI entry point for crossbuild tooling."""

import logging
import os
import sys

from crossbuild_tooling.cli import (
    build as build_cli,
)
from crossbuild_tooling.cli import (
    matrix_cmd,
    vendor_cmd,
    verify_cmd,
)

COMMANDS = {
    "matrix": ("Resolve buildable targets for this host", matrix_cmd.run_matrix_argv),
    "env": ("Print the merged cross-toolchain env (shell exports or JSON)", matrix_cmd.run_env_argv),
    "vendor": ("Vendor locked crates into the content-addressed cache", vendor_cmd.run_vendor_argv),
    "build": ("Two-phase build + standalone check for every target", build_cli.run_build_argv),
    "verify": ("Check a binary references nothing inside the store", verify_cmd.run_verify_argv),
}


def _usage() -> None:
    print("Usage: crossbuild <command> [args...]", file=sys.stderr)
    print("Commands:", file=sys.stderr)
    for name, (help_text, _run) in COMMANDS.items():
        print(f"  {name:<8} - {help_text}", file=sys.stderr)


def main() -> None:
    """Main CLI entry point."""
    logging.basicConfig(
        level=os.environ.get("CROSSBUILD_LOG_LEVEL", "WARNING").upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )
    if len(sys.argv) < 2:
        _usage()
        sys.exit(1)

    command = sys.argv[1]
    entry = COMMANDS.get(command)
    if entry is None:
        print(f"Error: Unknown command: {command}", file=sys.stderr)
        _usage()
        sys.exit(1)
    entry[1](sys.argv[2:])


if __name__ == "__main__":
    main()
