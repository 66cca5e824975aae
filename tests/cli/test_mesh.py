from pathlib import Path
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError
from ruamel.yaml import YAML
from typer.testing import CliRunner

from eksmesh.cli.mesh import mesh_app
from eksmesh.cluster.aws.audit import AuditReport
from eksmesh.mesh.plan import plan_security_mesh

runner = CliRunner()

CLUSTER_YAML = """
version: "1.0"
aws:
  cluster:
    name: test-cluster
    region: us-west-2
  nodeGroups:
    - name: standard
      nodeType: t3.medium
      minNodes: 1
      maxNodes: 3
    - name: spot
      nodeType: t3.large
      minNodes: 0
      maxNodes: 3
"""


@pytest.fixture
def cluster_file(tmp_path: Path) -> str:
    path = tmp_path / "cluster.yaml"
    path.write_text(CLUSTER_YAML)
    return str(path)


def test_plan_names() -> None:
    result = runner.invoke(
        mesh_app, ["plan", "--prefix", "ng", "--count", "2", "--format", "names"]
    )

    assert result.exit_code == 0
    assert result.stdout.splitlines() == [
        "ng-0",
        "ng-1",
        "ng-0-eksClusterIngressRule",
        "ng-sg0-defaultNodeSecurityGroup",
        "ng-1-eksClusterIngressRule",
        "ng-sg1-defaultNodeSecurityGroup",
        "ng-defaultNodeSecurityGroup-srcsg0",
        "ng-sg0-srcsg1",
        "ng-defaultNodeSecurityGroup-srcsg1",
        "ng-sg1-srcsg0",
    ]


def test_plan_edges_without_default_ingress() -> None:
    result = runner.invoke(
        mesh_app,
        [
            "plan",
            "-p",
            "ng",
            "-n",
            "1",
            "--no-default-ingress",
            "--control-plane-port",
            "8443",
            "-o",
            "edges",
        ],
    )

    assert result.exit_code == 0
    assert result.stdout.splitlines() == [
        "cluster-ingress cluster<-0 tcp:8443-8443",
        "mesh-default default<-0 -1:0-0",
    ]


def test_plan_yaml() -> None:
    result = runner.invoke(mesh_app, ["plan", "--prefix", "ng", "--count", "3"])

    assert result.exit_code == 0
    data = YAML(typ="safe").load(result.stdout)
    assert data["namePrefix"] == "ng"
    assert data["count"] == 3
    assert [group["name"] for group in data["groups"]] == ["ng-0", "ng-1", "ng-2"]
    assert len(data["rules"]) == len(plan_security_mesh("ng", 3).rules)
    assert data["rules"][0]["kind"] == "cluster-ingress"


def test_plan_is_deterministic() -> None:
    args = ["plan", "--prefix", "ng", "--count", "4"]
    assert runner.invoke(mesh_app, args).stdout == runner.invoke(mesh_app, args).stdout


def test_plan_from_cluster_file(cluster_file: str) -> None:
    result = runner.invoke(mesh_app, ["plan", "-f", cluster_file, "-o", "names"])

    assert result.exit_code == 0
    names = result.stdout.splitlines()
    assert names[:2] == ["test-cluster-ng-0", "test-cluster-ng-1"]
    assert "test-cluster-ng-sg1-srcsg0" in names


def test_plan_count_overrides_cluster_file(cluster_file: str) -> None:
    result = runner.invoke(
        mesh_app, ["plan", "-f", cluster_file, "--count", "0", "-o", "names"]
    )

    assert result.exit_code == 0
    assert result.stdout == ""


def test_plan_invalid_count() -> None:
    result = runner.invoke(mesh_app, ["plan", "--prefix", "ng", "--count", "-1"])
    assert result.exit_code == 1


def test_plan_empty_prefix() -> None:
    result = runner.invoke(mesh_app, ["plan", "--prefix", "", "--count", "1"])
    assert result.exit_code == 1


def test_plan_unsupported_format() -> None:
    result = runner.invoke(
        mesh_app, ["plan", "--prefix", "ng", "--count", "1", "--format", "json"]
    )
    assert result.exit_code == 1


def test_plan_without_cluster_file(tmp_path: Path) -> None:
    result = runner.invoke(
        mesh_app, ["plan", "-f", str(tmp_path / "missing.yaml"), "--count", "1"]
    )
    assert result.exit_code == 1


def test_audit_complete(cluster_file: str) -> None:
    with patch("eksmesh.cli.mesh.audit_security_mesh") as mock_audit, patch(
        "eksmesh.cli.mesh.read_pulumi_stack"
    ) as mock_read_pulumi_stack:
        mock_audit.side_effect = lambda plan, *args: AuditReport(plan=plan)
        mock_read_pulumi_stack.side_effect = lambda cluster, key: f"{key}-id"

        result = runner.invoke(mesh_app, ["audit", "-f", cluster_file])

    assert result.exit_code == 0
    plan, region, default, control_plane = mock_audit.call_args[0]
    assert plan.namePrefix == "test-cluster-ng"
    assert plan.count == 2
    assert region == "us-west-2"
    assert default == "default_security_group-id"
    assert control_plane == "control_plane_security_group-id"


def test_audit_with_explicit_groups(cluster_file: str) -> None:
    with patch("eksmesh.cli.mesh.audit_security_mesh") as mock_audit, patch(
        "eksmesh.cli.mesh.read_pulumi_stack"
    ) as mock_read_pulumi_stack:
        mock_audit.side_effect = lambda plan, *args: AuditReport(plan=plan)

        result = runner.invoke(
            mesh_app,
            [
                "audit",
                "-f",
                cluster_file,
                "--region",
                "eu-west-1",
                "--default-security-group",
                "sg-default",
            ],
        )

    assert result.exit_code == 0
    mock_read_pulumi_stack.assert_not_called()
    _, region, default, control_plane = mock_audit.call_args[0]
    assert region == "eu-west-1"
    assert default == "sg-default"
    assert control_plane is None


def test_audit_missing_rules(cluster_file: str) -> None:
    def report(plan, *args):
        return AuditReport(plan=plan, missing_rules=plan.mesh_rules()[:1])

    with patch("eksmesh.cli.mesh.audit_security_mesh", side_effect=report):
        result = runner.invoke(
            mesh_app,
            ["audit", "-f", cluster_file, "--default-security-group", "sg-default"],
        )

    assert result.exit_code == 1


def test_audit_aws_error(cluster_file: str) -> None:
    error = ClientError(
        {"Error": {"Code": "UnauthorizedOperation", "Message": "denied"}},
        "DescribeSecurityGroups",
    )
    with patch("eksmesh.cli.mesh.audit_security_mesh", side_effect=error):
        result = runner.invoke(
            mesh_app,
            ["audit", "-f", cluster_file, "--default-security-group", "sg-default"],
        )

    assert result.exit_code == 1


def test_audit_without_cluster_file(tmp_path: Path) -> None:
    with patch("eksmesh.cli.mesh.audit_security_mesh") as mock_audit:
        mock_audit.side_effect = lambda plan, *args: AuditReport(plan=plan)

        result = runner.invoke(
            mesh_app,
            [
                "audit",
                "-f",
                str(tmp_path / "missing.yaml"),
                "--prefix",
                "ng",
                "--count",
                "3",
                "--region",
                "us-east-1",
                "--default-security-group",
                "sg-default",
                "--control-plane-security-group",
                "sg-cluster",
            ],
        )

    assert result.exit_code == 0
    plan, region, default, control_plane = mock_audit.call_args[0]
    assert plan.namePrefix == "ng"
    assert plan.count == 3
    assert region == "us-east-1"
    assert default == "sg-default"
    assert control_plane == "sg-cluster"
