"""Evidence retrieval and matching for causal logic models."""

__version__ = "0.1.0"
