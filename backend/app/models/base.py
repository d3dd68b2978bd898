"""Shared SQLModel base class for table models."""

from __future__ import annotations

from typing import ClassVar

from sqlmodel import SQLModel

from app.db.query_manager import QueryManager


class QueryModel(SQLModel, table=False):
    """SQLModel base that exposes ``objects`` query helpers."""

    objects: ClassVar[QueryManager] = QueryManager()
