"""Tests for crossbuild_tooling.toolchain (compiler lookup, env names, cross environment)."""

import re
from pathlib import Path

import pytest

from conftest import write_executable
from crossbuild_tooling.errors import ToolchainUnavailable
from crossbuild_tooling.targets import TargetPlatform, resolve
from crossbuild_tooling.toolchain import (
    configure,
    cross_environment,
    merge_environments,
    render_json,
    render_shell,
)


def _matrix():
    return resolve(TargetPlatform("x86_64-linux", is_host=True), ["aarch64-linux"])


class TestConfigure:
    def test_host_uses_unprefixed_cc(self, toolchain_bin: Path) -> None:
        host, _ = _matrix()
        tc = configure(host, host="x86_64-linux", search_path=str(toolchain_bin))
        assert tc.cc == str(toolchain_bin / "cc")
        assert dict(tc.env) == {
            "CARGO_TARGET_X86_64_UNKNOWN_LINUX_MUSL_LINKER": tc.cc,
            "CC_X86_64_UNKNOWN_LINUX_MUSL": tc.cc,
        }

    def test_cross_uses_prefixed_cc(self, toolchain_bin: Path) -> None:
        _, cross = _matrix()
        tc = configure(cross, host="x86_64-linux", search_path=str(toolchain_bin))
        assert tc.cc == str(toolchain_bin / "aarch64-unknown-linux-musl-cc")
        assert tc.env["CARGO_TARGET_AARCH64_UNKNOWN_LINUX_MUSL_LINKER"] == tc.cc
        assert tc.env["CC_AARCH64_UNKNOWN_LINUX_MUSL"] == tc.cc

    def test_falls_back_to_gcc(self, tmp_path: Path) -> None:
        write_executable(tmp_path / "aarch64-unknown-linux-musl-gcc")
        _, cross = _matrix()
        tc = configure(cross, host="x86_64-linux", search_path=str(tmp_path))
        assert tc.cc.endswith("aarch64-unknown-linux-musl-gcc")

    def test_override_wins(self, toolchain_bin: Path, tmp_path: Path) -> None:
        custom = write_executable(tmp_path / "custom" / "my-aarch64-cc")
        _, cross = _matrix()
        tc = configure(
            cross,
            host="x86_64-linux",
            overrides={"aarch64-unknown-linux-musl": str(custom)},
            search_path=str(toolchain_bin),
        )
        assert tc.cc == str(custom)

    def test_missing_compiler_raises(self, tmp_path: Path) -> None:
        _, cross = _matrix()
        with pytest.raises(ToolchainUnavailable) as exc:
            configure(cross, host="x86_64-linux", search_path=str(tmp_path))
        assert exc.value.triple == "aarch64-unknown-linux-musl"
        assert "aarch64-unknown-linux-musl-cc" in exc.value.tried

    def test_env_names_are_env_safe(self, toolchain_bin: Path) -> None:
        for target in _matrix():
            tc = configure(target, host="x86_64-linux", search_path=str(toolchain_bin))
            for name in tc.env:
                assert re.fullmatch(r"[A-Z0-9_]+", name), name

    def test_env_is_read_only(self, toolchain_bin: Path) -> None:
        host, _ = _matrix()
        tc = configure(host, host="x86_64-linux", search_path=str(toolchain_bin))
        with pytest.raises(TypeError):
            tc.env["X"] = "y"  # type: ignore[index]


class TestMergeEnvironments:
    def test_left_biased(self) -> None:
        merged = merge_environments({"A": "1", "B": "2"}, {"B": "3", "C": "4"})
        assert dict(merged) == {"A": "1", "B": "2", "C": "4"}

    def test_result_is_read_only(self) -> None:
        merged = merge_environments({"A": "1"})
        with pytest.raises(TypeError):
            merged["A"] = "2"  # type: ignore[index]

    def test_cross_environment_unions_matrix(self, toolchain_bin: Path) -> None:
        configs = [configure(t, host="x86_64-linux", search_path=str(toolchain_bin)) for t in _matrix()]
        env = cross_environment(configs)
        assert set(env) == {
            "CARGO_TARGET_X86_64_UNKNOWN_LINUX_MUSL_LINKER",
            "CC_X86_64_UNKNOWN_LINUX_MUSL",
            "CARGO_TARGET_AARCH64_UNKNOWN_LINUX_MUSL_LINKER",
            "CC_AARCH64_UNKNOWN_LINUX_MUSL",
        }


class TestRender:
    def test_shell_quotes_values(self) -> None:
        out = render_shell({"B": "/opt/my cc", "A": "/usr/bin/cc"})
        assert out == "export A=/usr/bin/cc\nexport B='/opt/my cc'\n"

    def test_json_sorted(self) -> None:
        assert render_json({"B": "2", "A": "1"}).index('"A"') < render_json({"B": "2", "A": "1"}).index('"B"')
