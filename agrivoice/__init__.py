"""Top-level package for agrivoice."""

__version__ = "0.1.0"

from . import config, generator, orchestrator, search, suggestions, transcript  # noqa: E402

__all__ = ["config", "generator", "orchestrator", "search", "suggestions", "transcript"]
