"""Domain errors raised by the task engine and the reconciler."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class CamSyncError(Exception):
    """Base error for cam-sync domain failures."""

    message: str
    code: str = "cam_sync_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class NoExecutorRegisteredError(CamSyncError):
    """Submitted task type has no executor bound to the queue."""

    code: str = "no_executor"


@dataclass(slots=True)
class QueueFullError(CamSyncError):
    """Intake queue is at capacity; the task stays persisted as pending."""

    task_id: str = ""
    code: str = "queue_full"


@dataclass(slots=True)
class QueueClosedError(CamSyncError):
    """Queue was stopped and no longer accepts tasks."""

    code: str = "queue_closed"


@dataclass(slots=True)
class TaskNotFoundError(CamSyncError):
    code: str = "task_not_found"


@dataclass(slots=True)
class InvalidTransitionError(CamSyncError):
    """Requested status change is not allowed from the current status."""

    code: str = "invalid_transition"


@dataclass(slots=True)
class TaskTimeoutError(CamSyncError):
    """Task ran past its execution deadline."""

    code: str = "task_timeout"


@dataclass(slots=True)
class AccountNotFoundError(CamSyncError):
    code: str = "account_not_found"


@dataclass(slots=True)
class AdapterCreationError(CamSyncError):
    """Provider adapter could not be built for an account."""

    code: str = "adapter_creation_failed"


@dataclass(slots=True)
class RegionListingError(CamSyncError):
    code: str = "region_listing_failed"


@dataclass(slots=True)
class UnsupportedAssetTypeError(CamSyncError):
    """Adapter does not know how to list the requested asset type."""

    code: str = "unsupported_asset_type"
