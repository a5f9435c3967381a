from __future__ import annotations

from sqlalchemy import Index
from sqlmodel import Field, SQLModel


class AnalysisSessionRow(SQLModel, table=True):
    __tablename__ = "analysis_sessions"
    __table_args__ = (Index("idx_analysis_sessions_updated_at", "updated_at"),)

    id: str = Field(primary_key=True)
    name: str
    kind: str = Field(default="STYLE")
    analysis_json: str | None = None
    cache_json: str | None = None
    created_at: str
    updated_at: str
