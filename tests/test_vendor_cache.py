"""Tests for crossbuild_tooling.vendor.cache (content keys, single-flight, atomic publish)."""

import threading
from pathlib import Path

import pytest

from conftest import CountingFetcher
from crossbuild_tooling.errors import VendorFetchError
from crossbuild_tooling.vendor import DependencyLockSet, VendorCache, lock_set_key


def _tree(root: Path) -> dict[str, bytes]:
    return {p.relative_to(root).as_posix(): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()}


class TestLockSetKey:
    def test_deterministic(self) -> None:
        assert lock_set_key((b"a", b"b")) == lock_set_key((b"a", b"b"))

    def test_order_matters(self) -> None:
        assert lock_set_key((b"a", b"b")) != lock_set_key((b"b", b"a"))

    def test_boundaries_matter(self) -> None:
        assert lock_set_key((b"ab", b"c")) != lock_set_key((b"a", b"bc"))


class TestVendor:
    def test_populates_entry(self, tmp_path: Path, cargo_project: Path, counting_fetcher: CountingFetcher) -> None:
        cache = VendorCache(tmp_path / "cache", counting_fetcher)
        entry = cache.vendor(DependencyLockSet.of([cargo_project / "Cargo.lock"]))
        assert entry.path == tmp_path / "cache" / "vendor" / entry.key
        assert (entry.path / "crates-io" / "serde-1.0.203" / "Cargo.toml").is_file()
        assert (entry.path / "crates-io" / "itoa-1.0.11" / ".cargo-checksum.json").is_file()
        config = entry.config_path.read_text()
        assert "[source.crates-io]" in config
        assert 'replace-with = "vendored-crates-io"' in config
        assert f'directory = "{entry.path / "crates-io"}"' in config
        assert sorted(counting_fetcher.calls) == ["itoa-1.0.11", "serde-1.0.203"]

    def test_hit_does_not_fetch(self, tmp_path: Path, cargo_project: Path, counting_fetcher: CountingFetcher) -> None:
        cache = VendorCache(tmp_path / "cache", counting_fetcher)
        ls = DependencyLockSet.of([cargo_project / "Cargo.lock"])
        first = cache.vendor(ls)
        second = cache.vendor(ls)
        assert first == second
        assert len(counting_fetcher.calls) == 2

    def test_published_entry_reused_by_new_cache_instance(
        self, tmp_path: Path, cargo_project: Path, counting_fetcher: CountingFetcher
    ) -> None:
        ls = DependencyLockSet.of([cargo_project / "Cargo.lock"])
        VendorCache(tmp_path / "cache", counting_fetcher).vendor(ls)
        other = CountingFetcher()
        entry = VendorCache(tmp_path / "cache", other).vendor(ls)
        assert other.calls == []
        assert entry.config_path.is_file()

    def test_identical_content_identical_key_and_bytes(self, tmp_path: Path, cargo_project: Path) -> None:
        copy = tmp_path / "copy.lock"
        copy.write_bytes((cargo_project / "Cargo.lock").read_bytes())
        a = VendorCache(tmp_path / "c1", CountingFetcher()).vendor(DependencyLockSet.of([cargo_project / "Cargo.lock"]))
        b = VendorCache(tmp_path / "c1", CountingFetcher()).vendor(DependencyLockSet.of([copy]))
        assert a.key == b.key
        c = VendorCache(tmp_path / "c2", CountingFetcher()).vendor(DependencyLockSet.of([copy]))
        assert c.key == a.key
        ta, tc = _tree(a.path), _tree(c.path)
        assert set(ta) == set(tc)
        assert {k: v for k, v in ta.items() if k != "config.toml"} == {
            k: v for k, v in tc.items() if k != "config.toml"
        }

    def test_failure_registers_nothing(self, tmp_path: Path, cargo_project: Path) -> None:
        cache = VendorCache(tmp_path / "cache", CountingFetcher(fail_on="serde"))
        ls = DependencyLockSet.of([cargo_project / "Cargo.lock"])
        with pytest.raises(VendorFetchError, match="serde"):
            cache.vendor(ls)
        vendor_root = tmp_path / "cache" / "vendor"
        assert [p.name for p in vendor_root.iterdir()] == []

        ok = CountingFetcher()
        cache.fetcher = ok
        entry = cache.vendor(ls)
        assert entry.config_path.is_file()
        assert len(ok.calls) == 2

    def test_undecodable_lock_descriptor(self, tmp_path: Path, counting_fetcher: CountingFetcher) -> None:
        lock = tmp_path / "Cargo.lock"
        lock.write_bytes(b"\xff\xfe" + b"version = 3\n")
        cache = VendorCache(tmp_path / "cache", counting_fetcher)
        with pytest.raises(VendorFetchError, match="UTF-8"):
            cache.vendor(DependencyLockSet.of([lock]))
        assert counting_fetcher.calls == []
        vendor_root = tmp_path / "cache" / "vendor"
        assert not vendor_root.exists() or list(vendor_root.iterdir()) == []

    def test_concurrent_requests_fetch_once(self, tmp_path: Path, cargo_project: Path) -> None:
        fetcher = CountingFetcher(delay=0.05)
        cache = VendorCache(tmp_path / "cache", fetcher)
        ls = DependencyLockSet.of([cargo_project / "Cargo.lock"])
        barrier = threading.Barrier(4)
        results = []
        errors = []

        def worker() -> None:
            barrier.wait()
            try:
                results.append(cache.vendor(ls))
            except Exception as e:  # pragma: no cover - surfaced by the assert below
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
        assert len({r.key for r in results}) == 1
        assert sorted(fetcher.calls) == ["itoa-1.0.11", "serde-1.0.203"]

    def test_concurrent_waiters_see_failure(self, tmp_path: Path, cargo_project: Path) -> None:
        cache = VendorCache(tmp_path / "cache", CountingFetcher(delay=0.05, fail_on="serde"))
        ls = DependencyLockSet.of([cargo_project / "Cargo.lock"])
        barrier = threading.Barrier(3)
        outcomes = []

        def worker() -> None:
            barrier.wait()
            try:
                cache.vendor(ls)
                outcomes.append("ok")
            except VendorFetchError:
                outcomes.append("error")

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert outcomes == ["error", "error", "error"]

    def test_supplemental_lock_merged(self, tmp_path: Path, cargo_project: Path, counting_fetcher: CountingFetcher) -> None:
        std_lock = tmp_path / "std.lock"
        std_lock.write_text(
            '[[package]]\nname = "libc"\nversion = "0.2.150"\n'
            'source = "registry+https://github.com/rust-lang/crates.io-index"\n'
            'checksum = "89d92a4743f9a61002fae18374ed11e7973f530cb3a3255fb354818118b2203c"\n'
        )
        cache = VendorCache(tmp_path / "cache", counting_fetcher)
        entry = cache.vendor(DependencyLockSet.of([cargo_project / "Cargo.lock", std_lock]))
        assert (entry.path / "crates-io" / "libc-0.2.150").is_dir()
        assert len(counting_fetcher.calls) == 3
