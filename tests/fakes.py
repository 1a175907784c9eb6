"""Fakes and builders shared by the test suite."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from cam_sync.errors import UnsupportedAssetTypeError
from cam_sync.inventory.adapters.base import AdapterFactory
from cam_sync.inventory.models import CloudAccount, CloudProvider, CloudResource, Region


class FakeAdapter:
    """In-memory adapter that records how many region calls overlap."""

    provider = CloudProvider.AWS

    def __init__(
        self,
        *,
        regions: tuple[str, ...] = ("us-east-1",),
        resources: dict[tuple[str, str], list[str]] | None = None,
        failing: set[tuple[str, str]] | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.regions = regions
        self.resources = resources or {}
        self.failing = failing or set()
        self.delay_seconds = delay_seconds
        self.region_listing_error: Exception | None = None
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()
        self._active = 0
        self.max_active = 0

    def list_regions(self) -> list[Region]:
        if self.region_listing_error is not None:
            raise self.region_listing_error
        return [Region(region_id=region) for region in self.regions]

    def list_resources(self, region: str, asset_type: str) -> list[CloudResource]:
        with self._lock:
            self.calls.append((region, asset_type))
            self._active += 1
            self.max_active = max(self.max_active, self._active)
        try:
            if self.delay_seconds:
                time.sleep(self.delay_seconds)
            if (region, asset_type) in self.failing:
                raise RuntimeError(f"boom {region}/{asset_type}")
            if asset_type not in {"ecs", "vpc", "eip", "rds", "redis"}:
                raise UnsupportedAssetTypeError(f"unsupported {asset_type}")
            return [
                CloudResource(
                    asset_id=asset_id,
                    asset_name=f"name-{asset_id}",
                    asset_type=asset_type,
                    region=region,
                    attributes={"state": "running"},
                )
                for asset_id in self.resources.get((region, asset_type), [])
            ]
        finally:
            with self._lock:
                self._active -= 1


def make_factory(adapter: FakeAdapter) -> AdapterFactory:
    factory = AdapterFactory()
    factory.register(CloudProvider.AWS, lambda _account: adapter)
    return factory


def make_account(  # noqa: PLR0913
    account_id: str = "acc-1",
    *,
    tenant_id: str = "tenant-a",
    provider: CloudProvider = CloudProvider.AWS,
    regions: tuple[str, ...] = (),
    asset_types: tuple[str, ...] = (),
    auto_sync: bool = False,
    sync_interval_minutes: int = 0,
    access_key_id: str = "AKIA-TEST",
) -> CloudAccount:
    return CloudAccount(
        account_id=account_id,
        tenant_id=tenant_id,
        name=f"Account {account_id}",
        provider=provider,
        access_key_id=access_key_id,
        access_key_secret="secret",
        default_region="us-east-1",
        supported_regions=regions,
        supported_asset_types=asset_types,
        auto_sync=auto_sync,
        sync_interval_minutes=sync_interval_minutes,
    )


def wait_for(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.02)
    raise AssertionError("condition not reached before timeout")


