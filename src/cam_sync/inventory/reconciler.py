"""Reconcile live provider resources against stored instances."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from enum import Enum

from cam_sync.errors import AccountNotFoundError, RegionListingError, TaskTimeoutError
from cam_sync.inventory.adapters.base import AdapterFactory, CloudAdapter
from cam_sync.inventory.asset_types import DEFAULT_ASSET_TYPES, expand_asset_types, model_uid
from cam_sync.inventory.models import (
    AccountStatus,
    CloudAccount,
    CloudProvider,
    CloudResource,
    Instance,
    SyncError,
    SyncResult,
    merge_results,
)
from cam_sync.inventory.repository import AccountRepository, InstanceRepository
from cam_sync.runtime import ExecutionContext
from cam_sync.storage.common import utc_now

logger = logging.getLogger(__name__)


class SyncStage(str, Enum):
    ACCOUNTS_LOADED = "accounts_loaded"
    ADAPTER_READY = "adapter_ready"


RegionDoneCallback = Callable[[int, int, str], None]
AccountDoneCallback = Callable[[int, int, CloudAccount], None]
StageCallback = Callable[[SyncStage], None]


class AssetReconciler:
    """Diffs each region of an account against the instance store.

    Regions of one account run on a thread pool capped at
    ``region_concurrency``. Per-region results come back through futures and
    are merged by the calling thread.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        accounts: AccountRepository,
        instances: InstanceRepository,
        adapters: AdapterFactory,
        region_concurrency: int = 5,
        default_asset_types: tuple[str, ...] = DEFAULT_ASSET_TYPES,
    ) -> None:
        if region_concurrency <= 0:
            raise ValueError("region_concurrency must be > 0")
        self._accounts = accounts
        self._instances = instances
        self._adapters = adapters
        self._region_concurrency = region_concurrency
        self._default_asset_types = default_asset_types

    def sync_account(  # noqa: PLR0913
        self,
        *,
        tenant_id: str,
        account_id: str,
        asset_types: Iterable[str] = (),
        regions: Iterable[str] = (),
        context: ExecutionContext | None = None,
        on_region_done: RegionDoneCallback | None = None,
        on_stage: StageCallback | None = None,
    ) -> SyncResult:
        """Reconcile one account; raises ``AccountNotFoundError`` for unknown ids."""

        account = self._accounts.get_account(tenant_id=tenant_id, account_id=account_id)
        if on_stage is not None:
            on_stage(SyncStage.ACCOUNTS_LOADED)
        return self.reconcile_account(
            account,
            asset_types=asset_types,
            regions=regions,
            context=context,
            on_region_done=on_region_done,
            on_stage=on_stage,
        )

    def sync_provider(  # noqa: PLR0913
        self,
        *,
        tenant_id: str,
        provider: CloudProvider,
        asset_types: Iterable[str] = (),
        context: ExecutionContext | None = None,
        on_account_done: AccountDoneCallback | None = None,
        on_stage: StageCallback | None = None,
    ) -> SyncResult:
        """Reconcile every active account of ``provider``.

        One failing account is recorded in the result and the rest continue.
        """

        accounts = self._accounts.list_accounts(
            tenant_id=tenant_id,
            provider=provider,
            status=AccountStatus.ACTIVE,
        )
        if not accounts:
            raise AccountNotFoundError(
                f"No active {provider.value} accounts for tenant {tenant_id}",
            )
        if on_stage is not None:
            on_stage(SyncStage.ACCOUNTS_LOADED)

        requested = tuple(asset_types)
        aggregate = SyncResult(start_time=utc_now())
        for index, account in enumerate(accounts, start=1):
            try:
                outcome = self.reconcile_account(
                    account,
                    asset_types=requested,
                    context=context,
                    on_stage=on_stage,
                )
            except TaskTimeoutError:
                raise
            except Exception as error:
                logger.warning("Account %s sync failed: %s", account.account_id, error)
                outcome = SyncResult()
                outcome.record_failure(
                    SyncError(scope="account", message=str(error), account_id=account.account_id),
                )
            aggregate = aggregate.merge(outcome)
            if on_account_done is not None:
                on_account_done(index, len(accounts), account)
        return aggregate.finish(utc_now())

    def reconcile_account(  # noqa: PLR0913
        self,
        account: CloudAccount,
        *,
        asset_types: Iterable[str] = (),
        regions: Iterable[str] = (),
        context: ExecutionContext | None = None,
        on_region_done: RegionDoneCallback | None = None,
        on_stage: StageCallback | None = None,
    ) -> SyncResult:
        """Run the region fan-out for one account.

        Adapter creation and region listing failures abort the account;
        everything below region level is recorded in the result instead.
        """

        context = context or ExecutionContext()
        started_at = utc_now()
        context.check()
        adapter = self._adapters.create(account)
        if on_stage is not None:
            on_stage(SyncStage.ADAPTER_READY)
        target_regions = self._target_regions(adapter, account, regions, context)
        types = expand_asset_types(
            tuple(asset_types) or account.supported_asset_types,
            default=self._default_asset_types,
        )
        logger.info(
            "Syncing account %s: regions=%s asset_types=%s",
            account.account_id,
            ",".join(target_regions) or "-",
            ",".join(types),
        )

        results = [SyncResult(start_time=started_at, accounts_synced=1)]
        if target_regions:
            results.extend(
                self._fan_out(adapter, account, target_regions, types, context, on_region_done),
            )
        else:
            logger.warning("Account %s has no regions to sync", account.account_id)
        merged = merge_results(results).finish(utc_now())

        try:
            self._accounts.update_sync_time(
                account_id=account.account_id,
                synced_at=merged.end_time or utc_now(),
                asset_count=merged.total_synced,
            )
        except Exception:
            logger.warning(
                "Failed to update sync time for account %s",
                account.account_id,
                exc_info=True,
            )

        logger.info(
            "Account %s synced: total=%d created=%d updated=%d deleted=%d failed=%d",
            account.account_id,
            merged.total_synced,
            merged.created,
            merged.updated,
            merged.deleted,
            merged.failed,
        )
        return merged

    def discover(  # noqa: PLR0913
        self,
        *,
        tenant_id: str,
        account_id: str,
        region: str | None = None,
        asset_types: Iterable[str] = (),
        context: ExecutionContext | None = None,
    ) -> list[CloudResource]:
        """List live resources without writing to the instance store."""

        context = context or ExecutionContext()
        account = self._accounts.get_account(tenant_id=tenant_id, account_id=account_id)
        adapter = self._adapters.create(account)
        target_regions = (
            [region] if region else self._target_regions(adapter, account, (), context)
        )
        types = expand_asset_types(
            tuple(asset_types) or account.supported_asset_types,
            default=self._default_asset_types,
        )
        resources: list[CloudResource] = []
        for region_id in target_regions:
            for asset_type in types:
                context.check()
                resources.extend(adapter.list_resources(region_id, asset_type))
        return resources

    def _target_regions(
        self,
        adapter: CloudAdapter,
        account: CloudAccount,
        requested: Iterable[str],
        context: ExecutionContext,
    ) -> list[str]:
        context.check()
        try:
            available = [item.region_id for item in adapter.list_regions()]
        except Exception as error:
            raise RegionListingError(
                f"Failed to list regions for account {account.account_id}: {error}",
            ) from error

        allowed = set(account.supported_regions)
        wanted = set(requested)
        selected: list[str] = []
        for region_id in available:
            if allowed and region_id not in allowed:
                continue
            if wanted and region_id not in wanted:
                continue
            if region_id not in selected:
                selected.append(region_id)
        return selected

    def _fan_out(  # noqa: PLR0913
        self,
        adapter: CloudAdapter,
        account: CloudAccount,
        regions: list[str],
        asset_types: tuple[str, ...],
        context: ExecutionContext,
        on_region_done: RegionDoneCallback | None,
    ) -> list[SyncResult]:
        results: list[SyncResult] = []
        workers = min(self._region_concurrency, len(regions))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="region-sync") as pool:
            futures: dict[Future[SyncResult], str] = {
                pool.submit(self._sync_region, adapter, account, region, asset_types, context): (
                    region
                )
                for region in regions
            }
            for done, future in enumerate(as_completed(futures), start=1):
                region = futures[future]
                try:
                    results.append(future.result())
                except TaskTimeoutError:
                    for pending in futures:
                        pending.cancel()
                    raise
                except Exception as error:
                    logger.exception("Region %s sync crashed", region)
                    crashed = SyncResult()
                    crashed.record_failure(
                        SyncError(
                            scope="region",
                            message=str(error),
                            account_id=account.account_id,
                            region=region,
                        ),
                    )
                    results.append(crashed)
                if on_region_done is not None:
                    on_region_done(done, len(regions), region)
        return results

    def _sync_region(
        self,
        adapter: CloudAdapter,
        account: CloudAccount,
        region: str,
        asset_types: tuple[str, ...],
        context: ExecutionContext,
    ) -> SyncResult:
        result = SyncResult(start_time=utc_now(), regions_synced=1)
        for asset_type in asset_types:
            context.check()
            self._sync_asset_type(adapter, account, region, asset_type, context, result)
        return result.finish(utc_now())

    def _sync_asset_type(  # noqa: PLR0913
        self,
        adapter: CloudAdapter,
        account: CloudAccount,
        region: str,
        asset_type: str,
        context: ExecutionContext,
        result: SyncResult,
    ) -> None:
        uid = model_uid(account.provider.value, asset_type)

        def failure(scope: str, error: Exception, asset_id: str | None = None) -> SyncError:
            return SyncError(
                scope=scope,
                message=str(error),
                account_id=account.account_id,
                region=region,
                asset_type=asset_type,
                asset_id=asset_id,
            )

        try:
            live = adapter.list_resources(region, asset_type)
        except Exception as error:
            logger.warning("Listing %s in %s failed: %s", asset_type, region, error)
            result.record_failure(failure("list_resources", error))
            return

        live_by_id: dict[str, CloudResource] = {}
        for resource in live:
            live_by_id.setdefault(resource.asset_id, resource)

        context.check()
        try:
            existing = set(
                self._instances.list_asset_ids_by_region(
                    tenant_id=account.tenant_id,
                    model_uid=uid,
                    account_id=account.account_id,
                    region=region,
                ),
            )
        except Exception as error:
            logger.warning("Listing stored %s ids in %s failed: %s", uid, region, error)
            result.record_failure(failure("list_existing", error))
            existing = set()

        to_delete = existing - set(live_by_id)
        if to_delete:
            context.check()
            try:
                result.deleted += self._instances.delete_by_asset_ids(
                    tenant_id=account.tenant_id,
                    model_uid=uid,
                    account_id=account.account_id,
                    region=region,
                    asset_ids=to_delete,
                )
            except Exception as error:
                logger.warning(
                    "Deleting %d stale %s in %s failed: %s",
                    len(to_delete),
                    uid,
                    region,
                    error,
                )
                result.record_failure(failure("delete", error))

        for asset_id, resource in live_by_id.items():
            context.check()
            try:
                created = self._instances.upsert(
                    Instance(
                        tenant_id=account.tenant_id,
                        model_uid=uid,
                        asset_id=asset_id,
                        account_id=account.account_id,
                        region=region,
                        asset_name=resource.asset_name,
                        attributes=dict(resource.attributes),
                    ),
                )
            except Exception as error:
                logger.warning("Upserting %s %s failed: %s", uid, asset_id, error)
                result.record_failure(failure("upsert", error, asset_id))
                continue
            result.count_synced(asset_type=asset_type, region=region, created=created)
