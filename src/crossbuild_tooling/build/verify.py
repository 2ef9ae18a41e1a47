"""Standalone check: a binary must not depend on anything inside the build/cache store.

Requisites come from two places:
- ELF dynamic info: PT_INTERP, DT_NEEDED (resolved against DT_RPATH/DT_RUNPATH), the rpath dirs
- a reference scan of the raw bytes for any store prefix (works for non-ELF binaries too)

Only requisites under a store prefix are offending; system libraries are tolerated.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from elftools.common.exceptions import ELFError
from elftools.elf.dynamic import DynamicSection
from elftools.elf.elffile import ELFFile

from crossbuild_tooling.errors import NonStandaloneArtifact

log = logging.getLogger(__name__)

_REF_TAIL = rb"(?![A-Za-z0-9_.\-+])[^\x00\s\"':;]*"


@dataclass(frozen=True)
class VerificationResult:
    binary: Path
    requisites: tuple[str, ...]
    offending: tuple[str, ...]

    @property
    def passed(self) -> bool:
        return not self.offending


def _expand_origin(entry: str, binary: Path) -> str:
    if "$ORIGIN" not in entry and "${ORIGIN}" not in entry:
        return entry
    origin = str(binary.resolve().parent)
    return os.path.normpath(entry.replace("${ORIGIN}", origin).replace("$ORIGIN", origin))


def elf_requisites(binary: Path) -> list[str]:
    """Interpreter, rpath/runpath dirs and needed libraries of an ELF file. Empty for non-ELF files."""
    out: list[str] = []
    try:
        with binary.open("rb") as f:
            elf = ELFFile(f)
            for seg in elf.iter_segments():
                if seg["p_type"] == "PT_INTERP":
                    out.append(seg.get_interp_name())
            needed: list[str] = []
            search: list[str] = []
            for section in elf.iter_sections():
                if not isinstance(section, DynamicSection):
                    continue
                for tag in section.iter_tags():
                    if tag.entry.d_tag == "DT_NEEDED":
                        needed.append(tag.needed)
                    elif tag.entry.d_tag == "DT_RPATH":
                        search += [_expand_origin(e, binary) for e in tag.rpath.split(":") if e]
                    elif tag.entry.d_tag == "DT_RUNPATH":
                        search += [_expand_origin(e, binary) for e in tag.runpath.split(":") if e]
    except ELFError:
        log.debug("%s is not an ELF file; relying on reference scan", binary)
        return []

    out += search
    for lib in needed:
        if lib.startswith("/"):
            out.append(lib)
            continue
        resolved = next((f"{d}/{lib}" for d in search if Path(d, lib).exists()), None)
        out.append(resolved or lib)
    return out


def _normalize_prefixes(prefixes: Iterable[str | Path]) -> list[str]:
    out = []
    for p in prefixes:
        s = str(p).rstrip("/")
        if s:
            out.append(s)
    return out


def scan_references(binary: Path, prefixes: Iterable[str | Path]) -> list[str]:
    """Distinct paths under any prefix embedded in the binary's bytes, sorted."""
    data = binary.read_bytes()
    found: set[str] = set()
    for prefix in _normalize_prefixes(prefixes):
        pattern = re.compile(re.escape(prefix.encode()) + _REF_TAIL)
        for m in pattern.finditer(data):
            found.add(m.group(0).decode(errors="replace"))
    return sorted(found)


def _under(path: str, prefixes: list[str]) -> bool:
    return any(path == p or path.startswith(p + "/") for p in prefixes)


def verify_standalone(binary: Path, store_prefixes: Iterable[str | Path]) -> VerificationResult:
    prefixes = _normalize_prefixes(store_prefixes)
    requisites = elf_requisites(binary)
    refs = scan_references(binary, prefixes)
    all_reqs = list(dict.fromkeys([*requisites, *refs]))
    offending = sorted({r for r in all_reqs if _under(r, prefixes)})
    return VerificationResult(binary=binary, requisites=tuple(all_reqs), offending=tuple(offending))


def require_standalone(binary: Path, store_prefixes: Iterable[str | Path]) -> VerificationResult:
    """verify_standalone, raising NonStandaloneArtifact listing every offending requisite on failure."""
    result = verify_standalone(binary, store_prefixes)
    if not result.passed:
        raise NonStandaloneArtifact(str(binary), result.offending)
    return result
