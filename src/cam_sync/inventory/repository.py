"""Persistence for cloud accounts and stored asset instances."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from sqlalchemy import delete as sa_delete
from sqlalchemy import update as sa_update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, col, select

from cam_sync.errors import AccountNotFoundError
from cam_sync.inventory.models import AccountStatus, CloudAccount, CloudProvider, Instance
from cam_sync.storage.alembic_runner import upgrade_head
from cam_sync.storage.common import (
    build_sqlite_engine,
    dump_json,
    load_json_list,
    load_json_object,
    optional_utc,
    to_db_datetime,
    utc_now,
)
from cam_sync.storage.sqlmodel_models import AssetInstanceRow, CloudAccountRow

_DELETE_CHUNK_SIZE = 500


class InstanceRepository:
    """Instance store keyed by (tenant_id, model_uid, asset_id)."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    def upsert(self, instance: Instance) -> bool:
        """Insert or update one instance; return ``True`` when a new row was created."""

        now = to_db_datetime(utc_now())
        attributes_json = dump_json(instance.attributes or {})
        with Session(self.engine) as session:
            existing_id = session.exec(
                select(AssetInstanceRow.id).where(
                    AssetInstanceRow.tenant_id == instance.tenant_id,
                    AssetInstanceRow.model_uid == instance.model_uid,
                    AssetInstanceRow.asset_id == instance.asset_id,
                ),
            ).one_or_none()
            statement = sqlite_insert(AssetInstanceRow.__table__).values(
                tenant_id=instance.tenant_id,
                model_uid=instance.model_uid,
                asset_id=instance.asset_id,
                asset_name=instance.asset_name,
                account_id=instance.account_id,
                region=instance.region,
                attributes_json=attributes_json,
                created_at=now,
                updated_at=now,
            )
            statement = statement.on_conflict_do_update(
                index_elements=["tenant_id", "model_uid", "asset_id"],
                set_={
                    "asset_name": statement.excluded.asset_name,
                    "account_id": statement.excluded.account_id,
                    "region": statement.excluded.region,
                    "attributes_json": statement.excluded.attributes_json,
                    "updated_at": statement.excluded.updated_at,
                },
            )
            session.exec(statement)  # type: ignore[call-overload]
            session.commit()
        return existing_id is None

    def list_asset_ids_by_region(
        self,
        *,
        tenant_id: str,
        model_uid: str,
        account_id: str,
        region: str,
    ) -> list[str]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(AssetInstanceRow.asset_id).where(
                    AssetInstanceRow.tenant_id == tenant_id,
                    AssetInstanceRow.model_uid == model_uid,
                    AssetInstanceRow.account_id == account_id,
                    AssetInstanceRow.region == region,
                ),
            ).all()
        return [str(asset_id) for asset_id in rows]

    def delete_by_asset_ids(
        self,
        *,
        tenant_id: str,
        model_uid: str,
        account_id: str,
        region: str,
        asset_ids: Iterable[str],
    ) -> int:
        """Delete the given instances in one transaction and return the row count.

        Only rows still stored under ``account_id``/``region`` are removed, so
        an instance another region has just claimed survives.
        """

        ids = sorted(set(asset_ids))
        if not ids:
            return 0
        deleted = 0
        with Session(self.engine) as session:
            for start in range(0, len(ids), _DELETE_CHUNK_SIZE):
                chunk = ids[start : start + _DELETE_CHUNK_SIZE]
                result = session.exec(  # type: ignore[call-overload]
                    sa_delete(AssetInstanceRow).where(
                        col(AssetInstanceRow.tenant_id) == tenant_id,
                        col(AssetInstanceRow.model_uid) == model_uid,
                        col(AssetInstanceRow.account_id) == account_id,
                        col(AssetInstanceRow.region) == region,
                        col(AssetInstanceRow.asset_id).in_(chunk),
                    ),
                )
                deleted += int(result.rowcount or 0)
            session.commit()
        return deleted

    def get_instance(self, *, tenant_id: str, model_uid: str, asset_id: str) -> Instance | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(AssetInstanceRow).where(
                    AssetInstanceRow.tenant_id == tenant_id,
                    AssetInstanceRow.model_uid == model_uid,
                    AssetInstanceRow.asset_id == asset_id,
                ),
            ).one_or_none()
        return _to_instance(row) if row is not None else None

    def list_instances(
        self,
        *,
        tenant_id: str,
        model_uid: str | None = None,
        account_id: str | None = None,
        region: str | None = None,
        limit: int = 1_000,
    ) -> list[Instance]:
        with Session(self.engine) as session:
            statement = select(AssetInstanceRow).where(AssetInstanceRow.tenant_id == tenant_id)
            if model_uid is not None:
                statement = statement.where(AssetInstanceRow.model_uid == model_uid)
            if account_id is not None:
                statement = statement.where(AssetInstanceRow.account_id == account_id)
            if region is not None:
                statement = statement.where(AssetInstanceRow.region == region)
            statement = statement.order_by(
                col(AssetInstanceRow.model_uid).asc(),
                col(AssetInstanceRow.asset_id).asc(),
            ).limit(limit)
            rows = session.exec(statement).all()
        return [_to_instance(row) for row in rows]


class AccountRepository:
    """Cloud account store."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    def create_account(self, account: CloudAccount) -> CloudAccount:
        now = utc_now()
        with Session(self.engine) as session:
            row = CloudAccountRow(
                account_id=account.account_id,
                tenant_id=account.tenant_id,
                name=account.name,
                provider=account.provider.value,
                access_key_id=account.access_key_id,
                access_key_secret=account.access_key_secret,
                default_region=account.default_region,
                supported_regions_json=dump_json(list(account.supported_regions)),
                supported_asset_types_json=dump_json(list(account.supported_asset_types)),
                status=account.status.value,
                auto_sync=account.auto_sync,
                sync_interval_minutes=account.sync_interval_minutes,
                last_sync_at=(
                    to_db_datetime(account.last_sync_at)
                    if account.last_sync_at is not None
                    else None
                ),
                asset_count=account.asset_count,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_account(row)

    def get_account(self, *, tenant_id: str, account_id: str) -> CloudAccount:
        with Session(self.engine) as session:
            row = session.exec(
                select(CloudAccountRow).where(
                    CloudAccountRow.tenant_id == tenant_id,
                    CloudAccountRow.account_id == account_id,
                ),
            ).one_or_none()
        if row is None:
            raise AccountNotFoundError(f"Cloud account not found: {account_id}")
        return _to_account(row)

    def list_accounts(
        self,
        *,
        tenant_id: str | None = None,
        provider: CloudProvider | None = None,
        status: AccountStatus | None = None,
        auto_sync: bool | None = None,
    ) -> list[CloudAccount]:
        with Session(self.engine) as session:
            statement = select(CloudAccountRow)
            if tenant_id is not None:
                statement = statement.where(CloudAccountRow.tenant_id == tenant_id)
            if provider is not None:
                statement = statement.where(CloudAccountRow.provider == provider.value)
            if status is not None:
                statement = statement.where(CloudAccountRow.status == status.value)
            if auto_sync is not None:
                statement = statement.where(CloudAccountRow.auto_sync == auto_sync)
            rows = session.exec(statement.order_by(col(CloudAccountRow.account_id).asc())).all()
        return [_to_account(row) for row in rows]

    def update_sync_time(
        self,
        *,
        account_id: str,
        synced_at: datetime,
        asset_count: int,
    ) -> bool:
        with Session(self.engine) as session:
            result = session.exec(  # type: ignore[call-overload]
                sa_update(CloudAccountRow)
                .where(col(CloudAccountRow.account_id) == account_id)
                .values(
                    last_sync_at=to_db_datetime(synced_at),
                    asset_count=asset_count,
                    updated_at=to_db_datetime(utc_now()),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True


def _to_instance(row: AssetInstanceRow) -> Instance:
    return Instance(
        tenant_id=row.tenant_id,
        model_uid=row.model_uid,
        asset_id=row.asset_id,
        account_id=row.account_id,
        region=row.region,
        asset_name=row.asset_name,
        attributes=load_json_object(row.attributes_json),
        created_at=optional_utc(row.created_at),
        updated_at=optional_utc(row.updated_at),
    )


def _to_account(row: CloudAccountRow) -> CloudAccount:
    return CloudAccount(
        account_id=row.account_id,
        tenant_id=row.tenant_id,
        name=row.name,
        provider=CloudProvider(row.provider),
        access_key_id=row.access_key_id,
        access_key_secret=row.access_key_secret,
        default_region=row.default_region,
        supported_regions=tuple(str(item) for item in load_json_list(row.supported_regions_json)),
        supported_asset_types=tuple(
            str(item) for item in load_json_list(row.supported_asset_types_json)
        ),
        status=AccountStatus(row.status),
        auto_sync=bool(row.auto_sync),
        sync_interval_minutes=row.sync_interval_minutes,
        last_sync_at=optional_utc(row.last_sync_at),
        asset_count=row.asset_count,
    )

