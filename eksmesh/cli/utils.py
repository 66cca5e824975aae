from __future__ import annotations

import os
import platform
from typing import Optional

import typer

from eksmesh.cluster.manager.aws import AWSClusterManager
from eksmesh.cluster.manager.base import ClusterManager
from eksmesh.config import AwsConfig, Config, parse_yaml
from eksmesh.logger import logger
from eksmesh.utils import get_pulumi_root


def load_cluster_config(cluster_config_file: Optional[str]) -> Optional[Config]:
    if not cluster_config_file:
        cluster_config_file = "./cluster.yaml"
    cluster_config_file = os.path.abspath(os.path.expanduser(cluster_config_file))
    if not os.path.exists(cluster_config_file):
        return None

    with open(cluster_config_file, "r") as file:
        config = parse_yaml(file.read())
        return config


def load_cluster_manager(cluster_config: str) -> ClusterManager:
    """
    Loads the cluster manager based on the provided cluster configuration YAML file.

    Args:
        cluster_config (str): The path to the cluster configuration file. If not
        provided, defaults to "./cluster.yaml".

    Returns:
        ClusterManager: An instance of the cluster manager corresponding to the
        cloud provider specified in the configuration.

    Raises:
        FileNotFoundError: If the cluster configuration file does not exist.
        ValueError: If the cloud provider specified in the configuration is not supported.
    """
    config_data = load_cluster_config(cluster_config)

    if not config_data:
        raise FileNotFoundError(f"The cluster config file does not exist")

    if config_data.aws:
        return AWSClusterManager(config=config_data)
    else:
        raise ValueError("Unsupported cloud provider")


def ensure_cluster_config(cluster_file: Optional[str]) -> AwsConfig:
    config = load_cluster_config(cluster_file)
    if not config:
        logger.error("Cannot locate cluster configuration file.")
        raise typer.Exit(1)

    assert config.aws, "Only AWS is supported for now"
    return config.aws


def init_pulumi() -> None:
    """
    Initializes Pulumi by setting up necessary environment variables and creating
    the Pulumi state root directory.

    The passphrase defaults to an empty string and the backend URL defaults to a
    file URL pointing to the Pulumi root directory, unless they are already set in
    the environment.
    """
    os.environ["PULUMI_CONFIG_PASSPHRASE"] = os.environ.get(
        "PULUMI_CONFIG_PASSPHRASE", ""
    )

    pulumi_root = get_pulumi_root()
    os.makedirs(pulumi_root, exist_ok=True)
    os.environ["PULUMI_DEBUG_COMMANDS"] = os.environ.get(
        "PULUMI_DEBUG_COMMANDS", "false"
    )
    os.environ["PULUMI_HOME"] = os.environ.get("PULUMI_HOME", pulumi_root)

    system = platform.system().lower()
    if system == "windows":
        _, pulumi_root = os.path.splitdrive(pulumi_root)
        pulumi_url = f"file:///{pulumi_root}"
    else:
        pulumi_url = f"file://{pulumi_root}"

    os.environ["PULUMI_BACKEND_URL"] = os.environ.get(
        "PULUMI_BACKEND_URL",
        pulumi_url,
    )
