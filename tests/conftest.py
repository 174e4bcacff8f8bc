import copy
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest
from botocore.exceptions import ClientError

from rds_bluegreen.rds.lifecycle import ClusterLifecycle
from rds_bluegreen.rds.wait import RDSWaiters
from rds_bluegreen.orchestrator.orchestrator import BlueGreenOrchestrator
from rds_bluegreen.utils.deadline import Deadline
from rds_bluegreen.utils.retry import RetryStrategy
from rds_bluegreen.utils.waiter import WaiterOptions

ACCOUNT = "123456789012"
REGION = "us-east-1"
OLD_VERSION = "8.0.mysql_aurora.3.03.0"
NEW_VERSION = "8.0.mysql_aurora.3.05.2"

# Absent marker inside a status script
GONE = None


def cluster_arn(identifier: str) -> str:
    return f"arn:aws:rds:{REGION}:{ACCOUNT}:cluster:{identifier}"


def client_error(code: str, message: str = "", operation: str = "Operation") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"RequestId": "req-1"},
        },
        operation,
    )


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeRDS:
    """In-memory stand-in for the boto3 RDS client.

    Each describe of an object advances its status script by one entry; an
    exhausted script leaves the status unchanged. ``GONE`` in a script removes
    the object.
    """

    def __init__(self):
        self.clusters: Dict[str, dict] = {}
        self.instances: Dict[str, dict] = {}
        self.deployments: Dict[str, dict] = {}
        self.scripts: Dict[Tuple[str, str], List[Optional[str]]] = {}
        self.errors: Dict[str, List[Exception]] = {}
        self.calls: List[Tuple[str, dict]] = []
        self.page_size = 100
        self.provision_script: List[Optional[str]] = ["PROVISIONING", "AVAILABLE"]
        self.switchover_script: List[Optional[str]] = ["SWITCHOVER_IN_PROGRESS", "SWITCHOVER_COMPLETED"]
        self._next_id = 0
        self._created = datetime(2024, 1, 1, tzinfo=timezone.utc)

    # fixtures

    def add_cluster(
        self,
        identifier: str,
        engine_version: str = OLD_VERSION,
        members: Tuple[str, ...] = (),
        deletion_protection: bool = False,
        status: str = "available",
        tags: Optional[Dict[str, str]] = None,
        backup_retention_period: int = 1,
        parameter_group: str = "default.aurora-mysql8.0",
    ) -> dict:
        cluster = {
            "DBClusterIdentifier": identifier,
            "DBClusterArn": cluster_arn(identifier),
            "DbClusterResourceId": f"cluster-{identifier.upper()}",
            "Engine": "aurora-mysql",
            "EngineVersion": engine_version,
            "Status": status,
            "DeletionProtection": deletion_protection,
            "BackupRetentionPeriod": backup_retention_period,
            "DBClusterParameterGroup": parameter_group,
            "DBClusterMembers": [
                {"DBInstanceIdentifier": member, "IsClusterWriter": index == 0}
                for index, member in enumerate(members)
            ],
            "TagList": [{"Key": k, "Value": v} for k, v in (tags or {}).items()],
        }
        self.clusters[identifier] = cluster
        for member in members:
            self.instances[member] = {
                "DBInstanceIdentifier": member,
                "DBInstanceStatus": "available",
                "DBClusterIdentifier": identifier,
            }
        return cluster

    def add_deployment(
        self,
        name: str,
        status: str = "AVAILABLE",
        source: Optional[str] = None,
        target: Optional[str] = None,
        status_details: Optional[str] = None,
        age: int = 0,
    ) -> dict:
        self._next_id += 1
        deployment = {
            "BlueGreenDeploymentIdentifier": f"bgd-{self._next_id:04d}",
            "BlueGreenDeploymentName": name,
            "Source": source or cluster_arn(name),
            "Target": target or cluster_arn(f"{name}-green-abc123"),
            "Status": status,
            "CreateTime": self._created + timedelta(minutes=self._next_id - age),
        }
        if status_details:
            deployment["StatusDetails"] = status_details
        self.deployments[deployment["BlueGreenDeploymentIdentifier"]] = deployment
        return deployment

    def script(self, kind: str, key: str, *statuses: Optional[str]) -> None:
        self.scripts[(kind, key)] = list(statuses)

    def fail(self, operation: str, *errors: Exception) -> None:
        self.errors.setdefault(operation, []).extend(errors)

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def calls_to(self, operation: str) -> List[dict]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    # internals

    def _record(self, operation: str, kwargs: dict) -> None:
        self.calls.append((operation, kwargs))
        pending = self.errors.get(operation)
        if pending:
            raise pending.pop(0)

    def _advance(self, kind: str, key: str, record: dict, field: str) -> bool:
        script = self.scripts.get((kind, key))
        if not script:
            return True
        status = script.pop(0)
        if status is GONE:
            self._remove(kind, key)
            return False
        record[field] = status
        if kind == "deployment" and status == "SWITCHOVER_COMPLETED":
            self._complete_switchover(record)
        return True

    def _remove(self, kind: str, key: str) -> None:
        if kind == "deployment":
            self.deployments.pop(key, None)
        elif kind == "cluster":
            self.clusters.pop(key, None)
        elif kind == "instance":
            instance = self.instances.pop(key, None)
            if instance:
                cluster = self.clusters.get(instance.get("DBClusterIdentifier"))
                if cluster:
                    cluster["DBClusterMembers"] = [
                        m for m in cluster["DBClusterMembers"]
                        if m["DBInstanceIdentifier"] != key
                    ]

    def _find_cluster(self, identifier: str) -> Optional[dict]:
        for cluster in self.clusters.values():
            if identifier in (cluster["DBClusterIdentifier"], cluster["DBClusterArn"]):
                return cluster
        return None

    def _rename_cluster(self, cluster: dict, new_identifier: str) -> None:
        old_identifier = cluster["DBClusterIdentifier"]
        self.clusters.pop(old_identifier)
        cluster["DBClusterIdentifier"] = new_identifier
        cluster["DBClusterArn"] = cluster_arn(new_identifier)
        self.clusters[new_identifier] = cluster
        for member in cluster["DBClusterMembers"]:
            self.instances[member["DBInstanceIdentifier"]]["DBClusterIdentifier"] = new_identifier

    def _complete_switchover(self, deployment: dict) -> None:
        source = self._find_cluster(deployment["Source"])
        target = self._find_cluster(deployment["Target"])
        if source is None or target is None:
            return
        name = source["DBClusterIdentifier"]
        self._rename_cluster(source, f"{name}-old1")
        self._rename_cluster(target, name)
        deployment["Source"] = source["DBClusterArn"]
        deployment["Target"] = target["DBClusterArn"]

    # RDS API

    def describe_db_clusters(self, **kwargs):
        self._record("describe_db_clusters", kwargs)
        cluster = self._find_cluster(kwargs["DBClusterIdentifier"])
        if cluster is None:
            raise client_error("DBClusterNotFoundFault", "DBCluster not found")
        key = cluster["DBClusterIdentifier"]
        if not self._advance("cluster", key, cluster, "Status"):
            raise client_error("DBClusterNotFoundFault", "DBCluster not found")
        return {"DBClusters": [copy.deepcopy(cluster)]}

    def describe_db_instances(self, **kwargs):
        self._record("describe_db_instances", kwargs)
        key = kwargs["DBInstanceIdentifier"]
        instance = self.instances.get(key)
        if instance is None or not self._advance("instance", key, instance, "DBInstanceStatus"):
            raise client_error("DBInstanceNotFound", "DBInstance not found")
        return {"DBInstances": [copy.deepcopy(instance)]}

    def describe_blue_green_deployments(self, **kwargs):
        self._record("describe_blue_green_deployments", kwargs)

        if "BlueGreenDeploymentIdentifier" in kwargs:
            key = kwargs["BlueGreenDeploymentIdentifier"]
            deployment = self.deployments.get(key)
            if deployment is None or not self._advance("deployment", key, deployment, "Status"):
                raise client_error("BlueGreenDeploymentNotFoundFault", "not found")
            return {"BlueGreenDeployments": [copy.deepcopy(deployment)]}

        names = set()
        for flt in kwargs.get("Filters", []):
            if flt["Name"] == "blue-green-deployment-name":
                names.update(flt["Values"])
        matches = [
            copy.deepcopy(d) for d in self.deployments.values()
            if not names or d["BlueGreenDeploymentName"] in names
        ]
        start = int(kwargs.get("Marker", 0))
        page = matches[start:start + self.page_size]
        response = {"BlueGreenDeployments": page}
        if start + self.page_size < len(matches):
            response["Marker"] = str(start + self.page_size)
        return response

    def create_blue_green_deployment(self, **kwargs):
        self._record("create_blue_green_deployment", kwargs)
        name = kwargs["BlueGreenDeploymentName"]
        for deployment in self.deployments.values():
            if deployment["BlueGreenDeploymentName"] == name and deployment["Status"] != "DELETING":
                raise client_error("BlueGreenDeploymentAlreadyExistsFault", "already exists")

        source = self._find_cluster(kwargs["Source"])
        green = f"{source['DBClusterIdentifier']}-green-abc123"
        self.add_cluster(
            green,
            engine_version=kwargs.get("TargetEngineVersion", source["EngineVersion"]),
            members=tuple(f"{m['DBInstanceIdentifier']}-green" for m in source["DBClusterMembers"]),
            deletion_protection=source["DeletionProtection"],
            parameter_group=kwargs.get(
                "TargetDBClusterParameterGroupName", source["DBClusterParameterGroup"]
            ),
        )
        deployment = self.add_deployment(
            name, status="PROVISIONING", source=kwargs["Source"], target=cluster_arn(green)
        )
        self.script("deployment", deployment["BlueGreenDeploymentIdentifier"], *self.provision_script)
        return {"BlueGreenDeployment": copy.deepcopy(deployment)}

    def switchover_blue_green_deployment(self, **kwargs):
        self._record("switchover_blue_green_deployment", kwargs)
        key = kwargs["BlueGreenDeploymentIdentifier"]
        deployment = self.deployments[key]
        deployment["Status"] = "SWITCHOVER_IN_PROGRESS"
        self.script("deployment", key, *self.switchover_script)
        return {"BlueGreenDeployment": copy.deepcopy(deployment)}

    def delete_blue_green_deployment(self, **kwargs):
        self._record("delete_blue_green_deployment", kwargs)
        key = kwargs["BlueGreenDeploymentIdentifier"]
        deployment = self.deployments.get(key)
        if deployment is None:
            raise client_error("BlueGreenDeploymentNotFoundFault", "not found")
        deployment["Status"] = "DELETING"
        self.script("deployment", key, "DELETING", GONE)
        return {"BlueGreenDeployment": copy.deepcopy(deployment)}

    def modify_db_cluster(self, **kwargs):
        self._record("modify_db_cluster", kwargs)
        cluster = self._find_cluster(kwargs["DBClusterIdentifier"])
        if cluster is None:
            raise client_error("DBClusterNotFoundFault", "DBCluster not found")
        if "DeletionProtection" in kwargs:
            cluster["DeletionProtection"] = kwargs["DeletionProtection"]
        if "BackupRetentionPeriod" in kwargs:
            cluster["BackupRetentionPeriod"] = kwargs["BackupRetentionPeriod"]
        cluster["Status"] = "modifying"
        self.script("cluster", cluster["DBClusterIdentifier"], "available")
        return {"DBCluster": copy.deepcopy(cluster)}

    def delete_db_instance(self, **kwargs):
        self._record("delete_db_instance", kwargs)
        key = kwargs["DBInstanceIdentifier"]
        instance = self.instances.get(key)
        if instance is None:
            raise client_error("DBInstanceNotFound", "DBInstance not found")
        instance["DBInstanceStatus"] = "deleting"
        self.script("instance", key, "deleting", GONE)
        return {"DBInstance": copy.deepcopy(instance)}

    def delete_db_cluster(self, **kwargs):
        self._record("delete_db_cluster", kwargs)
        cluster = self._find_cluster(kwargs["DBClusterIdentifier"])
        if cluster is None:
            raise client_error("DBClusterNotFoundFault", "DBCluster not found")
        if cluster["DeletionProtection"]:
            raise client_error(
                "InvalidParameterCombination",
                "Cannot delete protected Cluster, please disable deletion protection and try again.",
            )
        if cluster["DBClusterMembers"]:
            raise client_error("InvalidDBClusterStateFault", "Cluster still has instances")
        cluster["Status"] = "deleting"
        self.script("cluster", cluster["DBClusterIdentifier"], "deleting", GONE)
        return {"DBCluster": copy.deepcopy(cluster)}

    def add_tags_to_resource(self, **kwargs):
        self._record("add_tags_to_resource", kwargs)
        cluster = self._find_cluster(kwargs["ResourceName"])
        tags = {t["Key"]: t["Value"] for t in cluster["TagList"]}
        tags.update({t["Key"]: t["Value"] for t in kwargs["Tags"]})
        cluster["TagList"] = [{"Key": k, "Value": v} for k, v in tags.items()]

    def remove_tags_from_resource(self, **kwargs):
        self._record("remove_tags_from_resource", kwargs)
        cluster = self._find_cluster(kwargs["ResourceName"])
        cluster["TagList"] = [t for t in cluster["TagList"] if t["Key"] not in kwargs["TagKeys"]]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rds() -> FakeRDS:
    return FakeRDS()


@pytest.fixture
def waiter_options() -> WaiterOptions:
    """Fast cadence: no initial delay, 10s polls on the fake clock."""
    return WaiterOptions(poll_interval=10.0, delay=0.0, not_found_checks=3)


@pytest.fixture
def make_deadline(clock):
    def factory(timeout: float = 7200.0) -> Deadline:
        return Deadline(timeout, clock=clock, sleep=clock.sleep)

    return factory


@pytest.fixture
def waiters(rds, waiter_options) -> RDSWaiters:
    return RDSWaiters(rds, waiter_options)


@pytest.fixture
def lifecycle(rds, waiters) -> ClusterLifecycle:
    return ClusterLifecycle(rds, waiters, retry_strategy=RetryStrategy(jitter=False))


@pytest.fixture
def orchestrator(rds, waiters, lifecycle) -> BlueGreenOrchestrator:
    return BlueGreenOrchestrator(rds, waiters, lifecycle)
