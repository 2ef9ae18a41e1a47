"""CrossEnvironment: merged toolchain env of a whole matrix, for multi-target dev shells."""

from __future__ import annotations

import json
import shlex
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from crossbuild_tooling.toolchain.configurator import ToolchainConfig


def merge_environments(*mappings: Mapping[str, str]) -> Mapping[str, str]:
    """Left-biased ordered merge: the first mapping defining a name wins. Returns a read-only mapping."""
    out: dict[str, str] = {}
    for m in mappings:
        for k, v in m.items():
            out.setdefault(k, v)
    return MappingProxyType(out)


def cross_environment(configs: Iterable[ToolchainConfig]) -> Mapping[str, str]:
    return merge_environments(*(c.env for c in configs))


def render_shell(env: Mapping[str, str]) -> str:
    """Shell-quoted export lines, sorted by name."""
    return "".join(f"export {k}={shlex.quote(v)}\n" for k, v in sorted(env.items()))


def render_json(env: Mapping[str, str]) -> str:
    return json.dumps(dict(sorted(env.items())), indent=2) + "\n"
