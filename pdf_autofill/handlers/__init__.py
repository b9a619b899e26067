"""Per-mode indexers, the output writer and the output verifier."""
