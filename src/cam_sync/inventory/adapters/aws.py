"""AWS adapter built on boto3."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

import boto3
from botocore.config import Config

from cam_sync.errors import UnsupportedAssetTypeError
from cam_sync.inventory.models import CloudAccount, CloudProvider, CloudResource, Region

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_MAX_POOL_CONNECTIONS = 25


def get_client(
    session: boto3.Session,
    service_name: str,
    *,
    region_name: str,
    max_attempts: int,
    read_timeout: int,
) -> Any:
    """Create a boto3 client with adaptive retries and bounded timeouts."""

    config = Config(
        retries={"max_attempts": max_attempts, "mode": "adaptive"},
        connect_timeout=min(DEFAULT_CONNECT_TIMEOUT, read_timeout),
        read_timeout=read_timeout,
        max_pool_connections=DEFAULT_MAX_POOL_CONNECTIONS,
    )
    return session.client(service_name, region_name=region_name, config=config)


class AwsAdapter:
    """Lists EC2, VPC, EIP, RDS and ElastiCache resources per region.

    boto3 sessions are not thread-safe, so each calling thread builds its own
    session through ``session_getter``.
    """

    provider = CloudProvider.AWS

    def __init__(
        self,
        session_getter: Callable[[], boto3.Session],
        *,
        default_region: str = DEFAULT_REGION,
        timeout_seconds: int = 30,
        max_attempts: int = 5,
    ) -> None:
        self._session_getter = session_getter
        self._local = threading.local()
        self._default_region = default_region or DEFAULT_REGION
        self._timeout_seconds = timeout_seconds
        self._max_attempts = max_attempts
        self._listers: dict[str, Callable[[str], list[CloudResource]]] = {
            "ecs": self._list_ec2_instances,
            "vpc": self._list_vpcs,
            "eip": self._list_addresses,
            "rds": self._list_db_instances,
            "redis": self._list_cache_clusters,
        }

    @classmethod
    def from_account(
        cls,
        account: CloudAccount,
        *,
        timeout_seconds: int = 30,
        max_attempts: int = 5,
    ) -> AwsAdapter:
        def session_getter() -> boto3.Session:
            return boto3.Session(
                aws_access_key_id=account.access_key_id,
                aws_secret_access_key=account.access_key_secret,
            )

        return cls(
            session_getter,
            default_region=account.default_region,
            timeout_seconds=timeout_seconds,
            max_attempts=max_attempts,
        )

    @property
    def supported_asset_types(self) -> tuple[str, ...]:
        return tuple(self._listers)

    def list_regions(self) -> list[Region]:
        ec2 = self._client("ec2", self._default_region)
        response = ec2.describe_regions()
        return [
            Region(region_id=item["RegionName"], name=item.get("Endpoint", ""))
            for item in response.get("Regions", [])
        ]

    def list_resources(self, region: str, asset_type: str) -> list[CloudResource]:
        lister = self._listers.get(asset_type)
        if lister is None:
            raise UnsupportedAssetTypeError(
                f"AWS adapter does not support asset type {asset_type!r}",
            )
        resources = lister(region)
        logger.debug("Listed %d %s resources in %s", len(resources), asset_type, region)
        return resources

    def _session(self) -> boto3.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_getter()
            self._local.session = session
        return session

    def _client(self, service_name: str, region: str) -> Any:
        return get_client(
            self._session(),
            service_name,
            region_name=region,
            max_attempts=self._max_attempts,
            read_timeout=self._timeout_seconds,
        )

    def _list_ec2_instances(self, region: str) -> list[CloudResource]:
        ec2 = self._client("ec2", region)
        resources: list[CloudResource] = []
        for page in ec2.get_paginator("describe_instances").paginate():
            for reservation in page.get("Reservations", []):
                for data in reservation.get("Instances", []):
                    tags, name = _parse_tags(data.get("Tags", []))
                    resources.append(
                        CloudResource(
                            asset_id=data.get("InstanceId", ""),
                            asset_name=name,
                            asset_type="ecs",
                            region=region,
                            attributes={
                                "instance_type": data.get("InstanceType", ""),
                                "state": data.get("State", {}).get("Name", ""),
                                "private_ip": data.get("PrivateIpAddress", ""),
                                "public_ip": data.get("PublicIpAddress", ""),
                                "vpc_id": data.get("VpcId", ""),
                                "subnet_id": data.get("SubnetId", ""),
                                "zone": data.get("Placement", {}).get("AvailabilityZone", ""),
                                "platform": data.get("PlatformDetails", ""),
                                "launch_time": _iso(data.get("LaunchTime")),
                                "security_groups": [
                                    sg.get("GroupId", "") for sg in data.get("SecurityGroups", [])
                                ],
                                "tags": tags,
                            },
                        ),
                    )
        return resources

    def _list_vpcs(self, region: str) -> list[CloudResource]:
        ec2 = self._client("ec2", region)
        resources: list[CloudResource] = []
        for page in ec2.get_paginator("describe_vpcs").paginate():
            for data in page.get("Vpcs", []):
                tags, name = _parse_tags(data.get("Tags", []))
                resources.append(
                    CloudResource(
                        asset_id=data.get("VpcId", ""),
                        asset_name=name,
                        asset_type="vpc",
                        region=region,
                        attributes={
                            "cidr_block": data.get("CidrBlock", ""),
                            "state": data.get("State", ""),
                            "is_default": bool(data.get("IsDefault", False)),
                            "tags": tags,
                        },
                    ),
                )
        return resources

    def _list_addresses(self, region: str) -> list[CloudResource]:
        ec2 = self._client("ec2", region)
        resources: list[CloudResource] = []
        for data in ec2.describe_addresses().get("Addresses", []):
            tags, name = _parse_tags(data.get("Tags", []))
            resources.append(
                CloudResource(
                    asset_id=data.get("AllocationId") or data.get("PublicIp", ""),
                    asset_name=name or data.get("PublicIp", ""),
                    asset_type="eip",
                    region=region,
                    attributes={
                        "public_ip": data.get("PublicIp", ""),
                        "instance_id": data.get("InstanceId", ""),
                        "association_id": data.get("AssociationId", ""),
                        "domain": data.get("Domain", ""),
                        "tags": tags,
                    },
                ),
            )
        return resources

    def _list_db_instances(self, region: str) -> list[CloudResource]:
        rds = self._client("rds", region)
        resources: list[CloudResource] = []
        for page in rds.get_paginator("describe_db_instances").paginate():
            for data in page.get("DBInstances", []):
                identifier = data.get("DBInstanceIdentifier", "")
                resources.append(
                    CloudResource(
                        asset_id=identifier,
                        asset_name=identifier,
                        asset_type="rds",
                        region=region,
                        attributes={
                            "engine": data.get("Engine", ""),
                            "engine_version": data.get("EngineVersion", ""),
                            "instance_class": data.get("DBInstanceClass", ""),
                            "status": data.get("DBInstanceStatus", ""),
                            "endpoint": data.get("Endpoint", {}).get("Address", ""),
                            "arn": data.get("DBInstanceArn", ""),
                        },
                    ),
                )
        return resources

    def _list_cache_clusters(self, region: str) -> list[CloudResource]:
        elasticache = self._client("elasticache", region)
        resources: list[CloudResource] = []
        for page in elasticache.get_paginator("describe_cache_clusters").paginate():
            for data in page.get("CacheClusters", []):
                if data.get("Engine") != "redis":
                    continue
                cluster_id = data.get("CacheClusterId", "")
                resources.append(
                    CloudResource(
                        asset_id=cluster_id,
                        asset_name=cluster_id,
                        asset_type="redis",
                        region=region,
                        attributes={
                            "engine_version": data.get("EngineVersion", ""),
                            "node_type": data.get("CacheNodeType", ""),
                            "status": data.get("CacheClusterStatus", ""),
                            "nodes": data.get("NumCacheNodes", 0),
                        },
                    ),
                )
        return resources


def _parse_tags(raw_tags: list[dict[str, str]]) -> tuple[dict[str, str], str]:
    tags: dict[str, str] = {}
    name = ""
    for tag in raw_tags:
        key = tag.get("Key", "")
        value = tag.get("Value", "")
        if not key.startswith("aws:"):
            tags[key] = value
        if key == "Name":
            name = value
    return tags, name


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value is not None else ""
