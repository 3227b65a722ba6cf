"""FTC Assistant backend: planner-routed RAG answering service."""

__version__ = "1.0.0"
