"""Convenience exports for persistence helpers."""

from __future__ import annotations

from .atomic import write_json_atomic

__all__ = ["write_json_atomic"]
