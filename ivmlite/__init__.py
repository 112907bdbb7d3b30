"""EVM word arithmetic, execution state, instruction semantics and advanced code analysis."""

__version__ = "0.1.0"
__all__ = ["words", "state", "instructions", "analysis"]