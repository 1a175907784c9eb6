from __future__ import annotations

import threading
from collections.abc import Iterator

import allure
import boto3
import pytest
from moto import mock_aws

from cam_sync.errors import AdapterCreationError, UnsupportedAssetTypeError
from cam_sync.inventory.adapters import default_adapter_factory
from cam_sync.inventory.adapters.aws import AwsAdapter, get_client
from cam_sync.inventory.models import CloudProvider
from tests.fakes import make_account

pytestmark = [
    allure.epic("Asset Reconciliation"),
    allure.feature("AWS Adapter"),
]

REGION = "us-east-1"


@pytest.fixture()
def moto_session(aws_credentials: None) -> Iterator[boto3.Session]:
    with mock_aws():
        yield boto3.Session(region_name=REGION)


@pytest.fixture()
def adapter(moto_session: boto3.Session) -> AwsAdapter:
    return AwsAdapter(
        lambda: boto3.Session(region_name=REGION),
        default_region=REGION,
        timeout_seconds=5,
        max_attempts=2,
    )


def test_client_carries_retry_and_timeout_policy(moto_session: boto3.Session) -> None:
    client = get_client(moto_session, "ec2", region_name=REGION, max_attempts=3, read_timeout=7)

    assert client.meta.region_name == REGION
    assert client.meta.config.read_timeout == 7
    assert client.meta.config.connect_timeout == 7
    assert client.meta.config.max_pool_connections == 25


def test_list_regions(adapter: AwsAdapter) -> None:
    region_ids = {region.region_id for region in adapter.list_regions()}

    assert {"us-east-1", "eu-west-1"} <= region_ids


def test_list_ec2_instances(adapter: AwsAdapter, moto_session: boto3.Session) -> None:
    ec2 = moto_session.client("ec2", region_name=REGION)
    image_id = ec2.describe_images(Owners=["amazon"])["Images"][0]["ImageId"]
    launched = ec2.run_instances(
        ImageId=image_id,
        MinCount=2,
        MaxCount=2,
        InstanceType="t3.micro",
        TagSpecifications=[
            {
                "ResourceType": "instance",
                "Tags": [{"Key": "Name", "Value": "web"}, {"Key": "team", "Value": "core"}],
            },
        ],
    )
    launched_ids = {item["InstanceId"] for item in launched["Instances"]}

    resources = adapter.list_resources(REGION, "ecs")

    assert {resource.asset_id for resource in resources} == launched_ids
    first = resources[0]
    assert first.asset_type == "ecs"
    assert first.region == REGION
    assert first.asset_name == "web"
    assert first.attributes["instance_type"] == "t3.micro"
    assert first.attributes["state"] == "running"
    assert first.attributes["tags"] == {"Name": "web", "team": "core"}


def test_list_vpcs_and_addresses(adapter: AwsAdapter, moto_session: boto3.Session) -> None:
    ec2 = moto_session.client("ec2", region_name=REGION)
    vpc_id = ec2.create_vpc(CidrBlock="10.20.0.0/16")["Vpc"]["VpcId"]
    ec2.create_tags(Resources=[vpc_id], Tags=[{"Key": "Name", "Value": "core-net"}])
    allocation = ec2.allocate_address(Domain="vpc")

    vpcs = {resource.asset_id: resource for resource in adapter.list_resources(REGION, "vpc")}
    addresses = adapter.list_resources(REGION, "eip")

    assert vpcs[vpc_id].asset_name == "core-net"
    assert vpcs[vpc_id].attributes["cidr_block"] == "10.20.0.0/16"
    assert vpcs[vpc_id].attributes["is_default"] is False
    assert [address.asset_id for address in addresses] == [allocation["AllocationId"]]
    assert addresses[0].attributes["public_ip"] == allocation["PublicIp"]


def test_list_db_instances(adapter: AwsAdapter, moto_session: boto3.Session) -> None:
    rds = moto_session.client("rds", region_name=REGION)
    rds.create_db_instance(
        DBInstanceIdentifier="orders-db",
        Engine="postgres",
        DBInstanceClass="db.t3.micro",
        AllocatedStorage=20,
        MasterUsername="admin",
        MasterUserPassword="password123",
    )

    [resource] = adapter.list_resources(REGION, "rds")

    assert resource.asset_id == "orders-db"
    assert resource.asset_type == "rds"
    assert resource.attributes["engine"] == "postgres"


@pytest.mark.usefixtures("moto_session")
def test_each_thread_gets_its_own_session() -> None:
    sessions: list[boto3.Session] = []
    lock = threading.Lock()

    def session_getter() -> boto3.Session:
        session = boto3.Session(region_name=REGION)
        with lock:
            sessions.append(session)
        return session

    adapter = AwsAdapter(session_getter, default_region=REGION, timeout_seconds=5, max_attempts=2)
    adapter.list_resources(REGION, "vpc")
    adapter.list_resources(REGION, "eip")
    assert len(sessions) == 1

    errors: list[Exception] = []

    def list_vpcs(region: str) -> None:
        try:
            adapter.list_resources(region, "vpc")
        except Exception as error:  # noqa: BLE001
            errors.append(error)

    threads = [
        threading.Thread(target=list_vpcs, args=(region,))
        for region in ("us-east-1", "eu-west-1", "ap-south-1")
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert len(sessions) == 4
    assert len({id(session) for session in sessions}) == 4


def test_unsupported_asset_type(adapter: AwsAdapter) -> None:
    assert adapter.supported_asset_types == ("ecs", "vpc", "eip", "rds", "redis")
    with pytest.raises(UnsupportedAssetTypeError, match="kafka"):
        adapter.list_resources(REGION, "kafka")


def test_default_factory_builds_aws_adapters_only() -> None:
    factory = default_adapter_factory(timeout_seconds=5, max_attempts=2)

    assert factory.providers() == [CloudProvider.AWS]
    assert isinstance(factory.create(make_account()), AwsAdapter)
    with pytest.raises(AdapterCreationError, match="Unsupported cloud provider: aliyun"):
        factory.create(make_account(provider=CloudProvider.ALIYUN))
    with pytest.raises(AdapterCreationError, match="no access credentials"):
        factory.create(make_account(access_key_id=""))
