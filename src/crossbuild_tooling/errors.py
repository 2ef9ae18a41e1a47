"""Error taxonomy for the cross-build pipeline.

Library code raises these; CLI commands catch CrossBuildError, print and return 1.
Which errors abort the whole build and which only fail one target is decided by
build.runner.run_pipeline.
"""

from __future__ import annotations

from collections.abc import Iterable


class CrossBuildError(Exception):
    """Base class for every pipeline failure."""


class ConfigurationError(CrossBuildError):
    """Naming or configuration policy bug (e.g. two platforms normalize to one env key)."""


class ToolchainUnavailable(CrossBuildError):
    """No cross-compiler could be found for a target triple."""

    def __init__(self, triple: str, tried: Iterable[str] = ()) -> None:
        self.triple = triple
        self.tried = tuple(tried)
        msg = f"No C compiler/linker available for {triple}"
        if self.tried:
            msg += f" (tried: {', '.join(self.tried)})"
        super().__init__(msg)


class VendorFetchError(CrossBuildError):
    """A locked dependency could not be retrieved; nothing was registered in the cache."""


class CompileError(CrossBuildError):
    """cargo failed in one of the build phases. diagnostic is cargo's output, unmodified."""

    def __init__(self, phase: str, triple: str, diagnostic: str, returncode: int | None = None) -> None:
        self.phase = phase
        self.triple = triple
        self.diagnostic = diagnostic
        self.returncode = returncode
        super().__init__(f"{phase} build failed for {triple} (exit {returncode})\n{diagnostic}")


class NonStandaloneArtifact(CrossBuildError):
    """The built binary references paths inside the build/cache store."""

    def __init__(self, binary: str, offending: Iterable[str]) -> None:
        self.binary = binary
        self.offending = tuple(offending)
        listed = "\n".join(f"  - {o}" for o in self.offending)
        super().__init__(f"{binary} is not standalone; store requisites:\n{listed}")


class BuildCancelled(CrossBuildError):
    """The target build was cancelled before it could finish."""
