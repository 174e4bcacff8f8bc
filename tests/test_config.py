import pytest
import yaml
from pydantic import ValidationError

from rds_bluegreen.config.models import (
    ClusterBlueGreenConfig,
    TimeoutsConfig,
    parse_duration,
    validate_cluster_identifier,
)
from rds_bluegreen.config.parser import Config, ConfigValidationError


@pytest.fixture
def config_data():
    """A minimal valid configuration with one resource."""
    return {
        "provider": {
            "region": "us-east-1",
            "default_tags": {"managed-by": "bluegreen"},
            "waiters": {"delay": "30s"},
        },
        "resources": [
            {
                "cluster_identifier": "orders",
                "engine": "aurora-mysql",
                "engine_version": "8.0.mysql_aurora.3.05.2",
                "create_deployment": True,
                "switchover_enabled": True,
                "timeouts": {"create": "1h30m"},
            }
        ],
    }


@pytest.fixture
def config_file(tmp_path, config_data):
    path = tmp_path / "bluegreen.yaml"
    path.write_text(yaml.safe_dump(config_data))
    return path


@pytest.mark.parametrize("value,expected", [
    ("120m", 7200.0),
    ("1h30m", 5400.0),
    ("45s", 45.0),
    ("1.5h", 5400.0),
    (90, 90.0),
])
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "10", "5 minutes", "m10", "-5m"])
def test_parse_duration_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_duration(value)


@pytest.mark.parametrize("identifier", ["1orders", "Orders", "orders--db", "orders-", "a" * 64])
def test_invalid_cluster_identifiers(identifier):
    with pytest.raises(ValueError):
        validate_cluster_identifier(identifier)


def test_resource_defaults():
    resource = ClusterBlueGreenConfig(cluster_identifier="orders", engine="aurora-mysql")

    assert resource.name == "orders"
    assert resource.create_deployment is False
    assert resource.switchover_enabled is False
    assert resource.cleanup_resources is False
    assert resource.backup_retention_period == 1
    assert resource.timeouts == TimeoutsConfig(create=7200, update=7200, delete=7200)
    assert resource.supports_blue_green


def test_custom_engine_is_accepted_but_not_blue_green():
    resource = ClusterBlueGreenConfig(cluster_identifier="orders", engine="custom-oracle-ee")

    assert not resource.supports_blue_green


def test_unknown_engine_is_rejected():
    with pytest.raises(ValidationError):
        ClusterBlueGreenConfig(cluster_identifier="orders", engine="oracle")


def test_load_file(config_file):
    config = Config(str(config_file)).load()

    [resource] = config.resources
    assert resource.timeouts.create == 5400.0
    assert resource.timeouts.update == 7200.0
    assert config.provider.waiters.delay == 30.0
    assert config.provider.waiters.poll_interval == 10.0
    assert config.get_resource("orders") is resource
    assert config.get_resources("billing") == []


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config(str(tmp_path / "missing.yaml")).load()


def test_invalid_yaml(tmp_path):
    path = tmp_path / "bluegreen.yaml"
    path.write_text("resources: [unterminated")

    with pytest.raises(ConfigValidationError, match="Failed to parse YAML"):
        Config(str(path)).load()


def test_errors_point_at_resource_field(config_data):
    config_data["resources"][0]["backup_retention_period"] = 40

    with pytest.raises(ConfigValidationError) as exc_info:
        Config().load_dict(config_data)

    [error] = exc_info.value.errors
    assert error["loc"] == ["resources", 0, "backup_retention_period"]
    assert "resources -> 0 -> backup_retention_period" in str(exc_info.value)


def test_missing_resources():
    with pytest.raises(ConfigValidationError) as exc_info:
        Config().load_dict({"provider": {}})

    assert exc_info.value.errors[0]["loc"] == ["resources"]


def test_duplicate_clusters_are_rejected(config_data):
    duplicate = dict(config_data["resources"][0], name="orders-again")
    config_data["resources"].append(duplicate)

    with pytest.raises(ConfigValidationError) as exc_info:
        Config().load_dict(config_data)

    assert "Clusters managed by more than one resource: orders" in str(exc_info.value)


def test_to_dict_round_trips_names(config_data):
    config = Config().load_dict(config_data)

    data = config.to_dict()

    assert data["resources"][0]["name"] == "orders"
    assert data["provider"]["default_tags"] == {"managed-by": "bluegreen"}
