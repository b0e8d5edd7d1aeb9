"""MindBridge privacy core: zero-knowledge wellness proofs and DP aggregation."""

__version__ = "0.1.0"
