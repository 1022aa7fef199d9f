"""Build helpers for Game Boy ROMs: tile cleanup, .pic compression, include scanning and patch templates."""

__version__ = "0.1.0"