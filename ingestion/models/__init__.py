"""Domain models shared across the pipeline."""
