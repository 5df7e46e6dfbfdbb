"""ORM models for benchmark runs and their platform builds."""
from __future__ import annotations

import datetime as dt
from typing import List, Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, Float, ForeignKey, Integer, MetaData, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ..schemas import BuildStatus, Platform, TriggerType
from ..utils import utcnow

metadata_obj = MetaData()


def _in_list(column: str, values: List[str]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class Base(DeclarativeBase):
    metadata = metadata_obj


class BenchmarkRunRecord(Base):
    __tablename__ = "benchmark_runs"
    __table_args__ = (
        CheckConstraint(_in_list("trigger_type", [item.value for item in TriggerType]), name="ck_runs_trigger_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_timestamp: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    trigger_type: Mapped[str] = mapped_column(String(20))
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    builds: Mapped[List["PlatformBuildRecord"]] = relationship(
        "PlatformBuildRecord", back_populates="run", order_by="PlatformBuildRecord.id"
    )


class PlatformBuildRecord(Base):
    __tablename__ = "platform_builds"
    __table_args__ = (
        CheckConstraint(_in_list("platform", [item.value for item in Platform]), name="ck_builds_platform"),
        CheckConstraint(_in_list("status", [item.value for item in BuildStatus]), name="ck_builds_status"),
        CheckConstraint(
            "(status = 'in_progress' AND completion_time IS NULL)"
            " OR (status <> 'in_progress' AND completion_time IS NOT NULL)",
            name="ck_builds_completion_matches_status",
        ),
        CheckConstraint("duration_seconds IS NULL OR duration_seconds >= 0", name="ck_builds_duration"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(ForeignKey("benchmark_runs.id"), index=True)
    platform: Mapped[str] = mapped_column(String(20))
    trigger_time: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True))
    completion_time: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=BuildStatus.IN_PROGRESS.value)
    build_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # ``metadata`` is reserved on declarative classes; the column keeps the plain name.
    build_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON(none_as_null=True), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    run: Mapped[BenchmarkRunRecord] = relationship("BenchmarkRunRecord", back_populates="builds")


__all__ = ["Base", "BenchmarkRunRecord", "PlatformBuildRecord", "metadata_obj"]
