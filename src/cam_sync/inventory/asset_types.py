"""Asset type aliases, groups and model identifiers."""

from __future__ import annotations

from collections.abc import Iterable

DEFAULT_ASSET_TYPES: tuple[str, ...] = ("ecs",)

ASSET_TYPE_GROUPS: dict[str, tuple[str, ...]] = {
    "database": ("rds", "redis", "mongodb"),
    "db": ("rds", "redis", "mongodb"),
    "network": ("vpc", "eip"),
    "net": ("vpc", "eip"),
    "storage": ("nas", "oss"),
    "middleware": ("kafka", "elasticsearch"),
    "mw": ("kafka", "elasticsearch"),
}

ASSET_TYPE_ALIASES: dict[str, str] = {
    "cloud_vm": "ecs",
    "vm": "ecs",
    "ec2": "ecs",
    "cloud_rds": "rds",
    "cloud_redis": "redis",
    "cloud_mongodb": "mongodb",
    "cloud_vpc": "vpc",
    "cloud_eip": "eip",
    "cloud_nas": "nas",
    "cloud_oss": "oss",
    "cloud_kafka": "kafka",
    "cloud_elasticsearch": "elasticsearch",
    "es": "elasticsearch",
}


def expand_asset_types(
    asset_types: Iterable[str],
    *,
    default: tuple[str, ...] = DEFAULT_ASSET_TYPES,
) -> tuple[str, ...]:
    """Resolve aliases and groups into concrete asset types.

    Order of first appearance is kept and duplicates are dropped. An empty
    input yields ``default``.
    """

    expanded: list[str] = []
    seen: set[str] = set()
    for raw in asset_types:
        name = raw.strip().lower()
        if not name:
            continue
        name = ASSET_TYPE_ALIASES.get(name, name)
        for asset_type in ASSET_TYPE_GROUPS.get(name, (name,)):
            if asset_type in seen:
                continue
            seen.add(asset_type)
            expanded.append(asset_type)
    if not expanded:
        return tuple(default)
    return tuple(expanded)


def model_uid(provider: str, asset_type: str) -> str:
    """Stored model key for one provider asset type, e.g. ``aws_ecs``."""

    return f"{provider}_{asset_type}"
