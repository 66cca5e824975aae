from unittest.mock import MagicMock, patch

import pytest

from eksmesh.cluster.manager.aws import AWSClusterManager
from eksmesh.config import AwsConfig, ClusterConfig, Config

config = Config(
    version="1.0",
    aws=AwsConfig(cluster=ClusterConfig(name="test-cluster", region="us-west-2")),
)


@pytest.fixture
def stack() -> MagicMock:
    with patch(
        "eksmesh.cluster.manager.base.auto.create_or_select_stack"
    ) as mock_create_or_select_stack:
        mock_stack = MagicMock()
        mock_create_or_select_stack.return_value = mock_stack
        yield mock_stack

        mock_create_or_select_stack.assert_called_once()
        _, kwargs = mock_create_or_select_stack.call_args
        assert kwargs["stack_name"] == "default"
        assert kwargs["project_name"] == "test-cluster"


def test_create(stack: MagicMock) -> None:
    manager = AWSClusterManager(config)
    stack.up.return_value.outputs = {
        "nodeSecurityGroupIds": MagicMock(value=["sg-0", "sg-1"])
    }

    manager.create()

    stack.set_config.assert_called_once()
    key, value = stack.set_config.call_args[0]
    assert key == "aws:region"
    assert value.value == "us-west-2"
    stack.up.assert_called_once()


def test_destroy(stack: MagicMock) -> None:
    manager = AWSClusterManager(config)
    manager.destroy()
    stack.destroy.assert_called_once()


def test_refresh(stack: MagicMock) -> None:
    manager = AWSClusterManager(config)
    manager.refresh()
    stack.refresh.assert_called_once()


def test_preview(stack: MagicMock) -> None:
    manager = AWSClusterManager(config)
    manager.preview(policy_packs=["policy"])
    _, kwargs = stack.preview.call_args
    assert kwargs["policy_packs"] == ["policy"]
    assert "on_output" in kwargs


def test_provision_k8s_builds_the_cluster() -> None:
    manager = AWSClusterManager(config)
    with patch("eksmesh.cluster.manager.aws.create_k8s_cluster") as mock_create:
        manager.provision_k8s()
    mock_create.assert_called_once_with(manager.ctx)
