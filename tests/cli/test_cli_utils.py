import os
from pathlib import Path
from unittest.mock import patch

import pytest
import typer

from eksmesh.cli.utils import (
    ensure_cluster_config,
    init_pulumi,
    load_cluster_config,
    load_cluster_manager,
)
from eksmesh.cluster.manager.aws import AWSClusterManager

CLUSTER_YAML = """
version: "1.0"
aws:
  cluster:
    name: test-cluster
    region: us-west-2
"""


def test_load_cluster_config(tmp_path: Path) -> None:
    cluster_file = tmp_path / "cluster.yaml"
    cluster_file.write_text(CLUSTER_YAML)

    config = load_cluster_config(str(cluster_file))
    assert config is not None
    assert config.aws is not None
    assert config.aws.cluster.name == "test-cluster"

    assert load_cluster_config(str(tmp_path / "missing.yaml")) is None


def test_load_cluster_manager(tmp_path: Path) -> None:
    cluster_file = tmp_path / "cluster.yaml"
    cluster_file.write_text(CLUSTER_YAML)

    manager = load_cluster_manager(str(cluster_file))
    assert isinstance(manager, AWSClusterManager)
    assert manager.ctx.cluster_name == "test-cluster"

    with pytest.raises(FileNotFoundError):
        load_cluster_manager(str(tmp_path / "missing.yaml"))


def test_ensure_cluster_config(tmp_path: Path) -> None:
    cluster_file = tmp_path / "cluster.yaml"
    cluster_file.write_text(CLUSTER_YAML)

    assert ensure_cluster_config(str(cluster_file)).cluster.region == "us-west-2"

    with pytest.raises(typer.Exit):
        ensure_cluster_config(str(tmp_path / "missing.yaml"))


def test_init_pulumi(tmp_path: Path) -> None:
    with patch.dict(os.environ, {"EKSMESH_HOME": str(tmp_path)}, clear=False):
        for key in ("PULUMI_BACKEND_URL", "PULUMI_HOME", "PULUMI_CONFIG_PASSPHRASE"):
            os.environ.pop(key, None)

        init_pulumi()

        pulumi_root = tmp_path / "pulumi"
        assert pulumi_root.is_dir()
        assert os.environ["PULUMI_CONFIG_PASSPHRASE"] == ""
        assert os.environ["PULUMI_HOME"] == str(pulumi_root)
        if os.name != "nt":
            assert os.environ["PULUMI_BACKEND_URL"] == f"file://{pulumi_root}"


def test_init_pulumi_keeps_backend_url(tmp_path: Path) -> None:
    with patch.dict(
        os.environ,
        {"EKSMESH_HOME": str(tmp_path), "PULUMI_BACKEND_URL": "s3://state-bucket"},
    ):
        init_pulumi()
        assert os.environ["PULUMI_BACKEND_URL"] == "s3://state-bucket"
