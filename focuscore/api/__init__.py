"""HTTP API for the focus engine."""
