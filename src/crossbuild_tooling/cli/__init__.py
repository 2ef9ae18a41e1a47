"""CLI for crossbuild tooling."""
