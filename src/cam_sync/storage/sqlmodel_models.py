"""SQLModel ORM tables for tasks, accounts and stored instances."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class TaskRow(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_tasks_status_created", "status", "created_at"),)

    task_id: str = Field(primary_key=True)
    task_type: str = Field(index=True)
    status: str = Field(index=True)
    params_json: str = Field(sa_column=Column(Text, nullable=False))
    result_json: str | None = Field(default=None, sa_column=Column(Text))
    error: str | None = Field(default=None, sa_column=Column(Text))
    progress: int = Field(default=0)
    message: str | None = None
    created_by: str = Field(default="", index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    duration_seconds: float | None = None
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskEventRow(SQLModel, table=True):
    __tablename__ = "task_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_task_events_task_time", "task_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(
        sa_column=Column(
            ForeignKey("tasks.task_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = None
    status_to: str | None = None
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class CloudAccountRow(SQLModel, table=True):
    __tablename__ = "cloud_accounts"  # type: ignore[bad-override]

    account_id: str = Field(primary_key=True)
    tenant_id: str = Field(index=True)
    name: str
    provider: str = Field(index=True)
    access_key_id: str = ""
    access_key_secret: str = ""
    default_region: str = ""
    supported_regions_json: str | None = Field(default=None, sa_column=Column(Text))
    supported_asset_types_json: str | None = Field(default=None, sa_column=Column(Text))
    status: str = Field(index=True)
    auto_sync: bool = Field(default=False)
    sync_interval_minutes: int = Field(default=0)
    last_sync_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    asset_count: int = Field(default=0)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AssetInstanceRow(SQLModel, table=True):
    __tablename__ = "asset_instances"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "model_uid",
            "asset_id",
            name="uq_asset_instances_tenant_model_asset",
        ),
        Index(
            "idx_asset_instances_scope_region",
            "tenant_id",
            "model_uid",
            "account_id",
            "region",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    tenant_id: str
    model_uid: str
    asset_id: str
    asset_name: str = ""
    account_id: str = Field(index=True)
    region: str = ""
    attributes_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
