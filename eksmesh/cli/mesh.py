from __future__ import annotations

from typing import Optional, Tuple

import typer
from botocore.exceptions import BotoCoreError, ClientError

from eksmesh.cli.utils import ensure_cluster_config
from eksmesh.cluster.aws.audit import audit_security_mesh
from eksmesh.constants import CONTROL_PLANE_PORT
from eksmesh.errors import InvalidArgument
from eksmesh.logger import logger
from eksmesh.mesh.plan import MeshPlan, plan_security_mesh
from eksmesh.utils import read_pulumi_stack, to_yaml

mesh_app = typer.Typer()


def _resolve_mesh_args(
    cluster_config: str,
    prefix: Optional[str],
    count: Optional[int],
    control_plane_port: Optional[int],
    no_default_ingress: bool,
) -> Tuple[str, int, int, bool]:
    # Without both a prefix and a count, everything comes from the cluster file
    if prefix is not None and count is not None:
        return (
            prefix,
            count,
            control_plane_port
            if control_plane_port is not None
            else CONTROL_PLANE_PORT,
            not no_default_ingress,
        )

    config = ensure_cluster_config(cluster_config)
    return (
        prefix if prefix is not None else config.mesh_name_prefix,
        count if count is not None else len(config.nodeGroups),
        control_plane_port
        if control_plane_port is not None
        else config.mesh.controlPlanePort,
        config.mesh.allowDefaultIngress and not no_default_ingress,
    )


def _plan(
    name_prefix: str, count: int, control_plane_port: int, allow_default_ingress: bool
) -> MeshPlan:
    try:
        return plan_security_mesh(
            name_prefix,
            count,
            control_plane_port=control_plane_port,
            allow_default_ingress=allow_default_ingress,
        )
    except InvalidArgument as e:
        logger.error(f"Invalid mesh: {e}")
        raise typer.Exit(1)


@mesh_app.command()
def plan(
    cluster_config: str = typer.Option(
        "",
        "--file",
        "-f",
        help="Path to the cluster config file. Used when --prefix or --count is missing.",
    ),
    prefix: Optional[str] = typer.Option(
        None,
        "--prefix",
        "-p",
        help="The prefix of the mesh resource names.",
    ),
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        help="The number of node groups.",
    ),
    control_plane_port: Optional[int] = typer.Option(
        None,
        "--control-plane-port",
        help="The port of the cluster API server.",
    ),
    no_default_ingress: bool = typer.Option(
        False,
        "--no-default-ingress",
        help="Do not let the default node security group reach the node groups.",
    ),
    output_format: str = typer.Option(
        "yaml",
        "--format",
        "-o",
        help="The output format: yaml, names or edges.",
    ),
) -> None:
    """
    Prints the security groups and rules of the mesh without touching the cloud.
    """
    mesh_plan = _plan(
        *_resolve_mesh_args(
            cluster_config, prefix, count, control_plane_port, no_default_ingress
        )
    )

    if output_format == "names":
        for name in mesh_plan.resource_names():
            typer.echo(name)
    elif output_format == "edges":
        for edge in mesh_plan.edges():
            typer.echo(edge)
    elif output_format == "yaml":
        typer.echo(to_yaml(mesh_plan.model_dump(mode="json")), nl=False)
    else:
        logger.error(f"Unsupported output format: {output_format}")
        raise typer.Exit(1)


@mesh_app.command()
def audit(
    cluster_config: str = typer.Option(
        "",
        "--file",
        "-f",
        help="Path to the cluster config file. Used for whatever is not given "
        "on the command line.",
    ),
    prefix: Optional[str] = typer.Option(
        None,
        "--prefix",
        "-p",
        help="The prefix of the mesh resource names.",
    ),
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        help="The number of node groups.",
    ),
    region: Optional[str] = typer.Option(
        None,
        "--region",
        "-r",
        help="The AWS region. Defaults to the region of the cluster.",
    ),
    default_security_group: Optional[str] = typer.Option(
        None,
        "--default-security-group",
        help="The id of the default node security group. Read from the stack if not provided.",
    ),
    control_plane_security_group: Optional[str] = typer.Option(
        None,
        "--control-plane-security-group",
        help="The id of the control plane security group. Read from the stack "
        "together with the default node security group if neither is provided.",
    ),
) -> None:
    """
    Checks that every rule of the mesh exists in AWS.
    """
    mesh_plan = _plan(*_resolve_mesh_args(cluster_config, prefix, count, None, False))

    if region is None or default_security_group is None:
        config = ensure_cluster_config(cluster_config)
        region = region or config.cluster.region

        if default_security_group is None:
            default_security_group = read_pulumi_stack(
                config.cluster.name, "default_security_group"
            )
            if control_plane_security_group is None:
                control_plane_security_group = read_pulumi_stack(
                    config.cluster.name, "control_plane_security_group"
                )

    try:
        report = audit_security_mesh(
            mesh_plan,
            region,
            default_security_group,
            control_plane_security_group,
        )
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Failed to describe security groups: {e}")
        raise typer.Exit(1)

    for name in report.missing_groups:
        logger.error(f"Missing security group: {name}")

    for rule in report.missing_rules:
        logger.error(f"Missing rule {rule.name}: {rule.edge()}")

    for rule in report.unchecked_rules:
        logger.warning(f"Unchecked rule {rule.name}: {rule.edge()}")

    if not report.ok:
        raise typer.Exit(1)

    logger.info(
        f"Security mesh {mesh_plan.namePrefix} is complete "
        f"({len(mesh_plan.groups)} groups, {len(mesh_plan.rules)} rules)."
    )
