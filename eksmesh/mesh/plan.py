"""
Desired state of the node group security mesh.

N node groups each get their own security group. To make them behave like a
single shared security group, every group is authorized to receive traffic
from every other group, and the cluster's default node security group is
authorized to receive traffic from every group. Ingress rules are directional,
so the mesh holds N*(N-1) pairwise rules plus N rules towards the default
group.

Groups are addressed by their index in ``[0, N)`` and rules by
``(destination, source)`` index pairs, so the whole plan is a flat, ordered,
serialisable list that is a pure function of its inputs.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field

from eksmesh.constants import CONTROL_PLANE_PORT
from eksmesh.errors import InvalidArgument

# Well-known security groups that live outside the mesh
DEFAULT_GROUP = "default"
CLUSTER_GROUP = "cluster"

GroupRef = Union[int, str]

ALL_PROTOCOLS = "-1"

MESH_RULE_DESCRIPTION = "Allow nodes to communicate with each other"
CLUSTER_INGRESS_DESCRIPTION = "Allow pods to communicate with the cluster API Server"
SECURITY_GROUP_DESCRIPTION = "Managed by eksmesh"


class RuleKind(str, Enum):
    # Control plane <- node group i, on the API port
    CLUSTER_INGRESS = "cluster-ingress"
    # Node group i <- default node security group
    DEFAULT_INGRESS = "default-ingress"
    # Default node security group <- node group i
    MESH_DEFAULT = "mesh-default"
    # Node group i <- node group j
    MESH_PAIR = "mesh-pair"


MESH_RULE_KINDS = (RuleKind.MESH_DEFAULT, RuleKind.MESH_PAIR)


class MeshModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class SecurityGroupSpec(MeshModel):
    """
    A security group isolating the workers of one node group.
    """

    name: str = Field(..., description="The resource name of the security group.")
    index: int = Field(..., description="The index of the node group.")
    namePrefix: str = Field(..., description="The prefix shared by the whole mesh.")
    description: str = Field(SECURITY_GROUP_DESCRIPTION)


class RuleSpec(MeshModel):
    """
    A directed ingress rule: ``destination`` accepts traffic from ``source``.
    """

    name: str = Field(..., description="The resource name of the rule.")
    kind: RuleKind
    source: GroupRef
    destination: GroupRef
    protocol: str = ALL_PROTOCOLS
    fromPort: int = 0
    toPort: int = 0
    description: str = MESH_RULE_DESCRIPTION

    @property
    def is_mesh_rule(self) -> bool:
        return self.kind in MESH_RULE_KINDS

    def edge(self) -> str:
        """Stable textual form of the rule, e.g. ``mesh-pair 0<-1 -1:0-0``."""
        return (
            f"{self.kind.value} {self.destination}<-{self.source} "
            f"{self.protocol}:{self.fromPort}-{self.toPort}"
        )


class MeshPlan(MeshModel):
    """
    The complete, ordered set of resources making up a security mesh.
    """

    namePrefix: str
    count: int
    groups: List[SecurityGroupSpec] = Field(default_factory=list)
    rules: List[RuleSpec] = Field(default_factory=list)

    def rules_of(self, *kinds: RuleKind) -> List[RuleSpec]:
        return [rule for rule in self.rules if rule.kind in kinds]

    def mesh_rules(self) -> List[RuleSpec]:
        return [rule for rule in self.rules if rule.is_mesh_rule]

    def group_rules(self, index: int) -> List[RuleSpec]:
        """
        Returns the rules that are created together with the group at ``index``.
        """
        return [
            rule
            for rule in self.rules_of(RuleKind.CLUSTER_INGRESS, RuleKind.DEFAULT_INGRESS)
            if rule.source == index or rule.destination == index
        ]

    def resource_names(self) -> List[str]:
        return [group.name for group in self.groups] + [rule.name for rule in self.rules]

    def edges(self) -> List[str]:
        return [rule.edge() for rule in self.rules]

    def summary(self) -> Dict[str, int]:
        counts = {"groups": len(self.groups)}
        for kind in RuleKind:
            counts[kind.value] = len(self.rules_of(kind))
        return counts


def group_name(name_prefix: str, index: int) -> str:
    return f"{name_prefix}-{index}"


def cluster_ingress_rule_name(name_prefix: str, index: int) -> str:
    return f"{group_name(name_prefix, index)}-eksClusterIngressRule"


def default_ingress_rule_name(name_prefix: str, index: int) -> str:
    return f"{name_prefix}-sg{index}-defaultNodeSecurityGroup"


def mesh_default_rule_name(name_prefix: str, index: int) -> str:
    return f"{name_prefix}-defaultNodeSecurityGroup-srcsg{index}"


def mesh_pair_rule_name(name_prefix: str, destination: int, source: int) -> str:
    return f"{name_prefix}-sg{destination}-srcsg{source}"


def validate_mesh_args(
    name_prefix: str, count: int, control_plane_port: int = CONTROL_PLANE_PORT
) -> None:
    """
    Validates the arguments of a mesh.

    Raises:
        InvalidArgument: If the prefix is empty, the count is not a non-negative
            integer, or the control plane port is out of range.
    """
    if not isinstance(name_prefix, str) or not name_prefix.strip():
        raise InvalidArgument("namePrefix must be a non-empty string")

    # bool is an int subclass, but never a meaningful group count
    if isinstance(count, bool) or not isinstance(count, int):
        raise InvalidArgument(f"count must be an integer, got {count!r}")

    if count < 0:
        raise InvalidArgument(f"count must be greater than or equal to 0, got {count}")

    if isinstance(control_plane_port, bool) or not isinstance(control_plane_port, int):
        raise InvalidArgument(
            f"control plane port must be an integer, got {control_plane_port!r}"
        )

    if not 0 < control_plane_port < 65536:
        raise InvalidArgument(
            f"control plane port must be between 1 and 65535, got {control_plane_port}"
        )


def plan_security_mesh(
    name_prefix: str,
    count: int,
    control_plane_port: int = CONTROL_PLANE_PORT,
    allow_default_ingress: bool = True,
) -> MeshPlan:
    """
    Computes the security mesh for ``count`` node groups.

    The order of the result is deterministic: every group is followed by the
    rules that belong to it, then the mesh rules come in ascending ``i`` and,
    for each ``i``, ascending ``j``.

    Args:
        name_prefix (str): The prefix of every resource name. Group ``i`` is
            named ``"<name_prefix>-<i>"``.
        count (int): The number of node groups.
        control_plane_port (int): The port of the cluster API server.
        allow_default_ingress (bool): Whether node groups accept traffic from the
            default node security group.

    Returns:
        MeshPlan: The desired state of the mesh.

    Raises:
        InvalidArgument: If the arguments are invalid.
    """
    validate_mesh_args(name_prefix, count, control_plane_port)

    groups: List[SecurityGroupSpec] = []
    rules: List[RuleSpec] = []

    for i in range(count):
        groups.append(
            SecurityGroupSpec(
                name=group_name(name_prefix, i), index=i, namePrefix=name_prefix
            )
        )
        rules.append(
            RuleSpec(
                name=cluster_ingress_rule_name(name_prefix, i),
                kind=RuleKind.CLUSTER_INGRESS,
                source=i,
                destination=CLUSTER_GROUP,
                protocol="tcp",
                fromPort=control_plane_port,
                toPort=control_plane_port,
                description=CLUSTER_INGRESS_DESCRIPTION,
            )
        )
        if allow_default_ingress:
            rules.append(
                RuleSpec(
                    name=default_ingress_rule_name(name_prefix, i),
                    kind=RuleKind.DEFAULT_INGRESS,
                    source=DEFAULT_GROUP,
                    destination=i,
                )
            )

    for i in range(count):
        rules.append(
            RuleSpec(
                name=mesh_default_rule_name(name_prefix, i),
                kind=RuleKind.MESH_DEFAULT,
                source=i,
                destination=DEFAULT_GROUP,
            )
        )
        for j in range(count):
            if i == j:
                continue
            rules.append(
                RuleSpec(
                    name=mesh_pair_rule_name(name_prefix, i, j),
                    kind=RuleKind.MESH_PAIR,
                    source=j,
                    destination=i,
                )
            )

    return MeshPlan(namePrefix=name_prefix, count=count, groups=groups, rules=rules)
