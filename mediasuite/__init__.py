"""Media Suite: scene-based video rendering service."""

__version__ = "0.1.0"
