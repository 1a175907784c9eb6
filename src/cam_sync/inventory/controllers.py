"""Controllers for account, sync and instance CLI commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from cam_sync.config import Settings
from cam_sync.inventory.models import AccountStatus, CloudAccount, CloudProvider, SyncResult
from cam_sync.services import open_services


@dataclass(slots=True)
class AccountAddCommand:
    """CLI input for cloud account registration."""

    db_path: Path | None
    tenant_id: str | None
    account_id: str
    name: str
    provider: str
    access_key_id: str
    access_key_secret: str
    default_region: str
    regions: tuple[str, ...]
    asset_types: tuple[str, ...]
    auto_sync: bool
    sync_interval_minutes: int
    disabled: bool = False


@dataclass(slots=True)
class AccountListCommand:
    db_path: Path | None
    tenant_id: str | None
    provider: str | None


@dataclass(slots=True)
class SyncAccountCommand:
    """CLI input for a direct, in-process account sync."""

    db_path: Path | None
    tenant_id: str | None
    account_id: str
    asset_types: tuple[str, ...]
    regions: tuple[str, ...]


@dataclass(slots=True)
class SyncProviderCommand:
    db_path: Path | None
    tenant_id: str | None
    provider: str
    asset_types: tuple[str, ...]


@dataclass(slots=True)
class InstanceListCommand:
    db_path: Path | None
    tenant_id: str | None
    model_uid: str | None
    account_id: str | None
    region: str | None
    limit: int


class InventoryCliController:
    """Coordinates account registration, direct syncs and instance listing."""

    def add_account(self, command: AccountAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        account = CloudAccount(
            account_id=command.account_id,
            tenant_id=command.tenant_id or settings.tenant_id,
            name=command.name,
            provider=parse_provider(command.provider),
            access_key_id=command.access_key_id,
            access_key_secret=command.access_key_secret,
            default_region=command.default_region,
            supported_regions=command.regions,
            supported_asset_types=command.asset_types,
            status=AccountStatus.DISABLED if command.disabled else AccountStatus.ACTIVE,
            auto_sync=command.auto_sync,
            sync_interval_minutes=command.sync_interval_minutes,
        )
        with open_services(settings) as services:
            stored = services.accounts.create_account(account)
        return [
            "Account added: "
            f"account_id={stored.account_id} provider={stored.provider.value} "
            f"status={stored.status.value} auto_sync={stored.auto_sync}",
        ]

    def list_accounts(self, command: AccountListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        provider = parse_provider(command.provider) if command.provider else None
        with open_services(settings) as services:
            accounts = services.accounts.list_accounts(
                tenant_id=command.tenant_id or settings.tenant_id,
                provider=provider,
            )
        lines = [f"Accounts: {len(accounts)}"]
        for account in accounts:
            last_sync = account.last_sync_at.isoformat() if account.last_sync_at else "-"
            lines.append(
                f"  {account.account_id} name={account.name} provider={account.provider.value} "
                f"status={account.status.value} auto_sync={account.auto_sync} "
                f"interval={account.sync_interval_minutes}m last_sync={last_sync} "
                f"assets={account.asset_count}",
            )
        return lines

    def sync_account(self, command: SyncAccountCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_services(settings) as services:
            result = services.reconciler.sync_account(
                tenant_id=command.tenant_id or settings.tenant_id,
                account_id=command.account_id,
                asset_types=command.asset_types,
                regions=command.regions,
            )
        return render_sync_result(result)

    def sync_provider(self, command: SyncProviderCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_services(settings) as services:
            result = services.reconciler.sync_provider(
                tenant_id=command.tenant_id or settings.tenant_id,
                provider=parse_provider(command.provider),
                asset_types=command.asset_types,
            )
        return render_sync_result(result)

    def list_instances(self, command: InstanceListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_services(settings) as services:
            instances = services.instances.list_instances(
                tenant_id=command.tenant_id or settings.tenant_id,
                model_uid=command.model_uid,
                account_id=command.account_id,
                region=command.region,
                limit=command.limit,
            )
        lines = [f"Instances: {len(instances)}"]
        for instance in instances:
            lines.append(
                f"  {instance.model_uid} {instance.asset_id} name={instance.asset_name or '-'} "
                f"account={instance.account_id} region={instance.region}",
            )
        return lines


def parse_provider(raw: str) -> CloudProvider:
    try:
        return CloudProvider(raw.strip().lower())
    except ValueError as error:
        supported = ", ".join(provider.value for provider in CloudProvider)
        raise ValueError(f"Unsupported provider {raw!r}; expected one of: {supported}") from error


def render_sync_result(result: SyncResult) -> list[str]:
    lines = [
        "Sync summary: "
        f"total={result.total_synced} created={result.created} updated={result.updated} "
        f"deleted={result.deleted} failed={result.failed} "
        f"accounts={result.accounts_synced} regions={result.regions_synced} "
        f"duration_ms={result.duration_ms}",
    ]
    for asset_type, count in sorted(result.by_asset_type.items()):
        lines.append(f"  asset_type {asset_type}: {count}")
    for region, count in sorted(result.by_region.items()):
        lines.append(f"  region {region}: {count}")
    for error in result.errors:
        lines.append(
            f"  error scope={error.scope} account={error.account_id or '-'} "
            f"region={error.region or '-'} asset_type={error.asset_type or '-'}: {error.message}",
        )
    return lines
