"""CLI entrypoint for cam-sync."""

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from cam_sync import __version__
from cam_sync.errors import CamSyncError
from cam_sync.inventory.controllers import (
    AccountAddCommand,
    AccountListCommand,
    InstanceListCommand,
    InventoryCliController,
    SyncAccountCommand,
    SyncProviderCommand,
)
from cam_sync.tasks.controllers import (
    ServeCommand,
    TaskCancelCommand,
    TaskCliController,
    TaskInspectCommand,
    TaskListCommand,
    TaskSubmitCommand,
)

click.rich_click.USE_MARKDOWN = True
INVENTORY_CONTROLLER = InventoryCliController()
TASK_CONTROLLER = TaskCliController()

CommandT = TypeVar("CommandT")

_db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path.",
)
_tenant_option = click.option(
    "--tenant-id",
    default=None,
    help="Tenant scope. Defaults to CAM_SYNC_TENANT_ID.",
)
_asset_type_option = click.option(
    "--asset-type",
    "asset_types",
    multiple=True,
    help="Asset type or group (ecs, vpc, eip, database, network, ...). Can be repeated.",
)


@click.group()
@click.version_option(version=__version__, prog_name="cam-sync")
@click.option(
    "--log-level",
    default=None,
    help="Logging level. Defaults to CAM_SYNC_LOG_LEVEL or INFO.",
)
def cam_sync(log_level: str | None) -> None:
    """Cloud asset inventory sync CLI."""

    level = (log_level or os.getenv("CAM_SYNC_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cam_sync.group()
def accounts() -> None:
    """Cloud account commands."""


@accounts.command("add")
@_db_path_option
@_tenant_option
@click.option("--account-id", required=True, help="Unique account id.")
@click.option("--name", required=True, help="Display name.")
@click.option("--provider", required=True, help="Cloud provider, for example aws.")
@click.option("--access-key-id", default="", help="Provider access key id.")
@click.option("--access-key-secret", default="", help="Provider access key secret.")
@click.option("--default-region", default="", help="Region used for region discovery.")
@click.option(
    "--region",
    "regions",
    multiple=True,
    help="Allowed region. Can be repeated; omit to allow every region.",
)
@_asset_type_option
@click.option("--auto-sync/--no-auto-sync", default=False, show_default=True)
@click.option(
    "--sync-interval-minutes",
    type=click.IntRange(min=0),
    default=0,
    show_default=True,
    help="Auto-sync interval.",
)
@click.option("--disabled", is_flag=True, default=False, help="Register the account disabled.")
def accounts_add(  # noqa: PLR0913
    db_path: Path | None,
    tenant_id: str | None,
    account_id: str,
    name: str,
    provider: str,
    access_key_id: str,
    access_key_secret: str,
    default_region: str,
    regions: tuple[str, ...],
    asset_types: tuple[str, ...],
    auto_sync: bool,
    sync_interval_minutes: int,
    disabled: bool,
) -> None:
    """Register a cloud account."""

    _emit_lines(
        _run(
            INVENTORY_CONTROLLER.add_account,
            AccountAddCommand(
                db_path=db_path,
                tenant_id=tenant_id,
                account_id=account_id,
                name=name,
                provider=provider,
                access_key_id=access_key_id,
                access_key_secret=access_key_secret,
                default_region=default_region,
                regions=regions,
                asset_types=asset_types,
                auto_sync=auto_sync,
                sync_interval_minutes=sync_interval_minutes,
                disabled=disabled,
            ),
        ),
    )


@accounts.command("list")
@_db_path_option
@_tenant_option
@click.option("--provider", default=None, help="Optional provider filter.")
def accounts_list(db_path: Path | None, tenant_id: str | None, provider: str | None) -> None:
    """List registered cloud accounts."""

    _emit_lines(
        _run(
            INVENTORY_CONTROLLER.list_accounts,
            AccountListCommand(db_path=db_path, tenant_id=tenant_id, provider=provider),
        ),
    )


@cam_sync.group()
def sync() -> None:
    """Run a reconciliation directly, without the task queue."""


@sync.command("account")
@_db_path_option
@_tenant_option
@click.argument("account_id")
@_asset_type_option
@click.option("--region", "regions", multiple=True, help="Region filter. Can be repeated.")
def sync_account(
    db_path: Path | None,
    tenant_id: str | None,
    account_id: str,
    asset_types: tuple[str, ...],
    regions: tuple[str, ...],
) -> None:
    """Reconcile one account against the instance store."""

    _emit_lines(
        _run(
            INVENTORY_CONTROLLER.sync_account,
            SyncAccountCommand(
                db_path=db_path,
                tenant_id=tenant_id,
                account_id=account_id,
                asset_types=asset_types,
                regions=regions,
            ),
        ),
    )


@sync.command("provider")
@_db_path_option
@_tenant_option
@click.argument("provider")
@_asset_type_option
def sync_provider(
    db_path: Path | None,
    tenant_id: str | None,
    provider: str,
    asset_types: tuple[str, ...],
) -> None:
    """Reconcile every active account of one provider."""

    _emit_lines(
        _run(
            INVENTORY_CONTROLLER.sync_provider,
            SyncProviderCommand(
                db_path=db_path,
                tenant_id=tenant_id,
                provider=provider,
                asset_types=asset_types,
            ),
        ),
    )


@cam_sync.group()
def instances() -> None:
    """Stored instance commands."""


@instances.command("list")
@_db_path_option
@_tenant_option
@click.option("--model-uid", default=None, help="Model filter, for example aws_ecs.")
@click.option("--account-id", default=None, help="Account filter.")
@click.option("--region", default=None, help="Region filter.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=10_000),
    default=100,
    show_default=True,
)
def instances_list(  # noqa: PLR0913
    db_path: Path | None,
    tenant_id: str | None,
    model_uid: str | None,
    account_id: str | None,
    region: str | None,
    limit: int,
) -> None:
    """List stored instances."""

    _emit_lines(
        _run(
            INVENTORY_CONTROLLER.list_instances,
            InstanceListCommand(
                db_path=db_path,
                tenant_id=tenant_id,
                model_uid=model_uid,
                account_id=account_id,
                region=region,
                limit=limit,
            ),
        ),
    )


@cam_sync.group()
def tasks() -> None:
    """Task queue commands."""


@tasks.command("submit")
@_db_path_option
@_tenant_option
@click.option(
    "--type",
    "task_type",
    default="sync_assets",
    show_default=True,
    help="Task type: sync_assets or discover_assets.",
)
@click.option("--account-id", default=None, help="Account to sync or discover.")
@click.option("--provider", default=None, help="Sync every active account of this provider.")
@_asset_type_option
@click.option("--region", "regions", multiple=True, help="Region filter. Can be repeated.")
@click.option("--created-by", default="cli", show_default=True, help="Submitter name.")
def tasks_submit(  # noqa: PLR0913
    db_path: Path | None,
    tenant_id: str | None,
    task_type: str,
    account_id: str | None,
    provider: str | None,
    asset_types: tuple[str, ...],
    regions: tuple[str, ...],
    created_by: str,
) -> None:
    """Submit a task to an in-process queue and wait for it to finish."""

    _emit_lines(
        _run(
            TASK_CONTROLLER.submit,
            TaskSubmitCommand(
                db_path=db_path,
                tenant_id=tenant_id,
                task_type=task_type,
                account_id=account_id,
                provider=provider,
                asset_types=asset_types,
                regions=regions,
                created_by=created_by,
            ),
        ),
    )


@tasks.command("list")
@_db_path_option
@click.option("--status", default=None, help="Status filter.")
@click.option("--type", "task_type", default=None, help="Task type filter.")
@click.option("--created-by", default=None, help="Submitter filter.")
@click.option("--offset", type=click.IntRange(min=0), default=0, show_default=True)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1_000),
    default=50,
    show_default=True,
)
def tasks_list(  # noqa: PLR0913
    db_path: Path | None,
    status: str | None,
    task_type: str | None,
    created_by: str | None,
    offset: int,
    limit: int,
) -> None:
    """List tasks, newest first."""

    _emit_lines(
        _run(
            TASK_CONTROLLER.list_tasks,
            TaskListCommand(
                db_path=db_path,
                status=status,
                task_type=task_type,
                created_by=created_by,
                offset=offset,
                limit=limit,
            ),
        ),
    )


@tasks.command("inspect")
@_db_path_option
@click.argument("task_id")
def tasks_inspect(db_path: Path | None, task_id: str) -> None:
    """Show task state, result and event trail."""

    _emit_lines(
        _run(TASK_CONTROLLER.inspect_task, TaskInspectCommand(db_path=db_path, task_id=task_id)),
    )


@tasks.command("cancel")
@_db_path_option
@click.argument("task_id")
def tasks_cancel(db_path: Path | None, task_id: str) -> None:
    """Cancel a pending task."""

    _emit_lines(
        _run(TASK_CONTROLLER.cancel_task, TaskCancelCommand(db_path=db_path, task_id=task_id)),
    )


@cam_sync.command("serve")
@_db_path_option
@click.option(
    "--duration-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Stop after this many seconds. Runs until interrupted when omitted.",
)
@click.option(
    "--scheduler/--no-scheduler",
    default=None,
    help="Override CAM_SYNC_SCHEDULER_ENABLED.",
)
def serve(db_path: Path | None, duration_seconds: float | None, scheduler: bool | None) -> None:
    """Run queue workers and the auto-sync scheduler."""

    _emit_lines(
        _run(
            TASK_CONTROLLER.serve,
            ServeCommand(
                db_path=db_path,
                duration_seconds=duration_seconds,
                scheduler=scheduler,
            ),
        ),
    )


def _run(handler: Callable[[CommandT], list[str]], command: CommandT) -> list[str]:
    try:
        return handler(command)
    except (CamSyncError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    cam_sync()
