"""Shared CLI arguments (--project-root, --config, --host, --systems) and config loading."""

from __future__ import annotations

import argparse
from pathlib import Path

from crossbuild_tooling.config import CrossBuildConfig, load_config


def path_resolver(s: str) -> Path:
    """Resolve a path argument to absolute Path (e.g. --project-root, --config)."""
    return Path(s).resolve()


def split_systems(s: str) -> list[str]:
    """"x86_64-linux, aarch64-linux" -> ["x86_64-linux", "aarch64-linux"]."""
    return [x.strip() for x in s.split(",") if x.strip()]


def add_common_args(ap: argparse.ArgumentParser, *, matrix: bool = True) -> None:
    ap.add_argument(
        "--project-root",
        type=path_resolver,
        default=Path.cwd(),
        help="Project root (default: cwd)",
    )
    ap.add_argument(
        "--config",
        type=path_resolver,
        default=None,
        help="Config file (default: <project-root>/crossbuild.yaml if present)",
    )
    if matrix:
        ap.add_argument("--host", default=None, help="Host system (default: config or detected)")
        ap.add_argument(
            "--systems",
            type=split_systems,
            default=None,
            help="Comma-separated requested systems (default: config systems)",
        )


def config_from_args(args: argparse.Namespace) -> CrossBuildConfig:
    return load_config(args.project_root, args.config)
