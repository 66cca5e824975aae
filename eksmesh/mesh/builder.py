from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

from eksmesh.constants import CONTROL_PLANE_PORT
from eksmesh.errors import ProvisioningError
from eksmesh.logger import logger
from eksmesh.mesh.emitter import MeshEmitter, NetworkRef
from eksmesh.mesh.plan import (
    CLUSTER_GROUP,
    DEFAULT_GROUP,
    GroupRef,
    RuleKind,
    RuleSpec,
    plan_security_mesh,
)

R = TypeVar("R")


@dataclass(frozen=True)
class NodeSecurityGroupData:
    """
    The security group of one node group and the rule letting it reach the
    control plane. Both are meant to be attached to the same node group.
    """

    index: int
    name: str
    node_security_group: Any
    cluster_ingress_rule: Any


def _declare(resource: str, fn: Callable[..., R], *args: Any) -> R:
    try:
        return fn(*args)
    except ProvisioningError:
        raise
    except Exception as e:
        raise ProvisioningError(e, resource) from e


def build_security_mesh(
    name_prefix: str,
    count: int,
    vpc: NetworkRef,
    cluster: Any,
    emitter: Optional[MeshEmitter] = None,
    control_plane_port: int = CONTROL_PLANE_PORT,
    allow_default_ingress: bool = True,
) -> List[NodeSecurityGroupData]:
    """
    Declares ``count`` node security groups and meshes them together.

    Every group gets a rule to reach the control plane. Then the cluster's
    default node security group accepts traffic from every group, and every
    group accepts traffic from every other group. Nothing is rolled back on
    failure: names only depend on ``name_prefix`` and the group indexes, so
    running the build again converges on the same resources.

    Args:
        name_prefix (str): The prefix of every resource name.
        count (int): The number of node groups.
        vpc (NetworkRef): The network the security groups are created in.
        cluster (Any): The cluster exposing the default node security group and
            the control plane security group.
        emitter (MeshEmitter, optional): Declares the resources. Defaults to the
            Pulumi emitter.
        control_plane_port (int): The port of the cluster API server.
        allow_default_ingress (bool): Whether node groups accept traffic from the
            default node security group.

    Returns:
        List[NodeSecurityGroupData]: One entry per node group, in index order.

    Raises:
        InvalidArgument: If the prefix is empty or the count is negative.
        ProvisioningError: If any resource fails to be declared.
    """
    plan = plan_security_mesh(
        name_prefix,
        count,
        control_plane_port=control_plane_port,
        allow_default_ingress=allow_default_ingress,
    )

    if emitter is None:
        from eksmesh.cluster.aws.security_group import PulumiMeshEmitter

        emitter = PulumiMeshEmitter()

    logger.info(
        f"Building security mesh {name_prefix} for {count} node groups "
        f"({len(plan.rules)} rules)"
    )
    logger.debug(f"Mesh plan: {plan.summary()}")

    default_group = _declare(
        DEFAULT_GROUP, emitter.default_security_group, cluster
    )
    control_plane = _declare(
        CLUSTER_GROUP, emitter.control_plane_security_group, cluster
    )

    groups: List[Any] = []
    refs: Dict[str, Any] = {DEFAULT_GROUP: default_group, CLUSTER_GROUP: control_plane}

    def resolve(ref: GroupRef) -> Any:
        if isinstance(ref, int):
            return groups[ref]
        return refs[ref]

    def declare_rule(rule: RuleSpec) -> Any:
        return _declare(
            rule.name,
            emitter.ingress_rule,
            rule,
            resolve(rule.source),
            resolve(rule.destination),
        )

    result: List[NodeSecurityGroupData] = []

    # A group and its own rules are declared before any mesh rule refers to it
    for spec in plan.groups:
        group = _declare(
            spec.name, emitter.security_group, spec, vpc, control_plane
        )
        groups.append(group)

        cluster_ingress_rule = None
        for rule in plan.group_rules(spec.index):
            handle = declare_rule(rule)
            if rule.kind == RuleKind.CLUSTER_INGRESS:
                cluster_ingress_rule = handle

        result.append(
            NodeSecurityGroupData(
                index=spec.index,
                name=spec.name,
                node_security_group=group,
                cluster_ingress_rule=cluster_ingress_rule,
            )
        )

    for rule in plan.mesh_rules():
        declare_rule(rule)

    return result
