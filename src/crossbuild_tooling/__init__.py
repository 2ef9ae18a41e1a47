"""crossbuild_tooling: build one cargo binary for a matrix of target platforms.

Resolve buildable targets, derive per-target toolchain env, vendor locked crates into a
content-addressed cache, and run two-phase (deps layer, then binary) builds with a
standalone check on the result.
"""

__version__ = "0.1.0"
