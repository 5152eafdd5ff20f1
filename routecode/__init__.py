"""routecode: terminal coding agent for OpenRouter models."""

__version__ = "1.0.0"
