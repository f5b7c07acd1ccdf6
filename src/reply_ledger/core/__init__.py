"""Core configuration for the reply pipeline."""
