"""Search engine: provider adapters, ranking, and preview resolution."""
