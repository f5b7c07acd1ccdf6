"""HTTP API for the reply pipeline."""
