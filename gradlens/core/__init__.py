"""Core numerical primitives for gradlens."""

from . import activations, losses, network, tensor_ops, types

__all__ = ["activations", "losses", "network", "tensor_ops", "types"]
