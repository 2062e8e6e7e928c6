"""Provide the public `taskboard` package exports."""

from __future__ import annotations

from .board.service import BoardService, create_board_service

__all__ = ["BoardService", "create_board_service"]
