"""Two-phase cargo builds (deps layer, then binary), standalone verification, matrix runner."""

from .pipeline import BuildArtifact, BuildPipeline, run_cargo
from .project import SourceProject, source_tree_hash, write_dummy_source
from .runner import BuildReport, configure_matrix, resolve_matrix, run_pipeline
from .verify import VerificationResult, require_standalone, verify_standalone

__all__ = [
    "BuildArtifact",
    "BuildPipeline",
    "BuildReport",
    "SourceProject",
    "VerificationResult",
    "configure_matrix",
    "require_standalone",
    "resolve_matrix",
    "run_cargo",
    "run_pipeline",
    "source_tree_hash",
    "verify_standalone",
    "write_dummy_source",
]
