"""Duel history."""

from .duel_log import DuelLog

__all__ = ["DuelLog"]
