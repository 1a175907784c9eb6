"""Cloud adapter contract and the provider-keyed adapter factory."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol

from cam_sync.errors import AdapterCreationError
from cam_sync.inventory.adapters.aws import AwsAdapter
from cam_sync.inventory.models import CloudAccount, CloudProvider, CloudResource, Region

logger = logging.getLogger(__name__)


class CloudAdapter(Protocol):
    """Interface for per-provider resource listing.

    Implementations are shared by all region workers of one account sync and
    must be safe for concurrent calls.
    """

    provider: CloudProvider

    def list_regions(self) -> list[Region]:
        """Return regions visible to the account."""
        raise NotImplementedError

    def list_resources(self, region: str, asset_type: str) -> list[CloudResource]:
        """Return live resources of one asset type in one region.

        Raise ``UnsupportedAssetTypeError`` for asset types the adapter cannot list.
        """
        raise NotImplementedError


AdapterBuilder = Callable[[CloudAccount], CloudAdapter]


class AdapterFactory:
    """Builds adapters for accounts from per-provider builders."""

    def __init__(self) -> None:
        self._builders: dict[CloudProvider, AdapterBuilder] = {}
        self._lock = threading.Lock()

    def register(self, provider: CloudProvider, builder: AdapterBuilder) -> None:
        with self._lock:
            self._builders[provider] = builder

    def providers(self) -> list[CloudProvider]:
        with self._lock:
            return sorted(self._builders, key=lambda provider: provider.value)

    def create(self, account: CloudAccount) -> CloudAdapter:
        """Build an adapter for ``account`` or raise ``AdapterCreationError``."""

        if not account.access_key_id or not account.access_key_secret:
            raise AdapterCreationError(
                f"Account {account.account_id} has no access credentials configured",
            )
        with self._lock:
            builder = self._builders.get(account.provider)
        if builder is None:
            raise AdapterCreationError(f"Unsupported cloud provider: {account.provider.value}")
        try:
            return builder(account)
        except AdapterCreationError:
            raise
        except Exception as error:
            raise AdapterCreationError(
                f"Failed to create {account.provider.value} adapter: {error}",
            ) from error


def default_adapter_factory(
    *,
    timeout_seconds: int = 30,
    max_attempts: int = 5,
) -> AdapterFactory:
    """Factory with every adapter shipped in this package registered."""

    factory = AdapterFactory()
    factory.register(
        CloudProvider.AWS,
        lambda account: AwsAdapter.from_account(
            account,
            timeout_seconds=timeout_seconds,
            max_attempts=max_attempts,
        ),
    )
    logger.debug("Registered adapters: %s", [p.value for p in factory.providers()])
    return factory
