"""codex-eyes: restart an interactive Codex session with an image attached."""

__version__ = "0.1.0"
