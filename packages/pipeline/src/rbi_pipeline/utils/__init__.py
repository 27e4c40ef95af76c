"""Shared helpers for the pipeline: logging, retries, checkpoints."""
