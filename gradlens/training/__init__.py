"""Training loops, optimizers, metrics and config-driven pipelines."""
