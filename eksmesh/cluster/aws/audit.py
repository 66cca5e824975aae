from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import boto3

from eksmesh.constants import MESH_INDEX_TAG_KEY, MESH_TAG_KEY
from eksmesh.logger import logger
from eksmesh.mesh.plan import (
    ALL_PROTOCOLS,
    CLUSTER_GROUP,
    DEFAULT_GROUP,
    GroupRef,
    MeshPlan,
    RuleSpec,
)


@dataclass
class AuditReport:
    """
    The difference between a mesh plan and the security groups found in AWS.

    ``unchecked_rules`` holds the rules that could not be checked because one of
    their security groups is unknown, e.g. the control plane security group was
    not given.
    """

    plan: MeshPlan
    missing_groups: List[str] = field(default_factory=list)
    missing_rules: List[RuleSpec] = field(default_factory=list)
    unchecked_rules: List[RuleSpec] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing_groups and not self.missing_rules


def _tag(security_group: Dict[str, Any], key: str) -> Optional[str]:
    for tag in security_group.get("Tags", []):
        if tag.get("Key") == key:
            return tag.get("Value")
    return None


def find_mesh_security_groups(
    ec2: Any, name_prefix: str, vpc_id: Optional[str] = None
) -> Dict[int, Dict[str, Any]]:
    """
    Finds the node security groups of a mesh by their tags.

    Other clusters may use the same prefix, so the search is limited to
    ``vpc_id`` when it is given.

    Returns:
        Dict[int, Dict[str, Any]]: The security groups keyed by their index.
    """
    security_groups: Dict[int, Dict[str, Any]] = {}

    filters = [{"Name": f"tag:{MESH_TAG_KEY}", "Values": [name_prefix]}]
    if vpc_id:
        filters.append({"Name": "vpc-id", "Values": [vpc_id]})

    paginator = ec2.get_paginator("describe_security_groups")
    for page in paginator.paginate(Filters=filters):
        for security_group in page.get("SecurityGroups", []):
            index = _tag(security_group, MESH_INDEX_TAG_KEY)
            if index is None or not index.isdigit():
                logger.warning(
                    f"Ignoring security group {security_group['GroupId']} without a valid mesh index"
                )
                continue
            security_groups[int(index)] = security_group

    return security_groups


def permission_allows(permission: Dict[str, Any], rule: RuleSpec, source_id: str) -> bool:
    """
    Checks whether an ingress permission, as returned by ``describe_security_groups``,
    lets ``source_id`` send the traffic described by ``rule``.
    """
    protocol = str(permission.get("IpProtocol", ""))
    if protocol != ALL_PROTOCOLS:
        if rule.protocol == ALL_PROTOCOLS or protocol != rule.protocol:
            return False
        from_port = permission.get("FromPort")
        to_port = permission.get("ToPort")
        if from_port is None or to_port is None:
            return False
        if from_port > rule.fromPort or to_port < rule.toPort:
            return False

    return any(
        pair.get("GroupId") == source_id
        for pair in permission.get("UserIdGroupPairs", [])
    )


def audit_security_mesh(
    plan: MeshPlan,
    region: str,
    default_security_group_id: str,
    control_plane_security_group_id: Optional[str] = None,
    ec2: Any = None,
) -> AuditReport:
    """
    Compares a mesh plan with the security groups that actually exist in AWS.

    A missing directed rule only breaks traffic in one direction, which is hard
    to notice from inside the cluster. This reports every such rule.

    Args:
        plan (MeshPlan): The desired mesh.
        region (str): The AWS region of the cluster.
        default_security_group_id (str): The id of the cluster's default node security group.
        control_plane_security_group_id (str, optional): The id of the control plane
            security group. If None, the control plane rules are not checked.
        ec2 (Any, optional): A boto3 EC2 client. Created from ``region`` if None.

    Returns:
        AuditReport: The missing groups and rules.
    """
    if ec2 is None:
        ec2 = boto3.client("ec2", region_name=region)

    report = AuditReport(plan=plan)

    external_ids = [default_security_group_id]
    if control_plane_security_group_id:
        external_ids.append(control_plane_security_group_id)

    response = ec2.describe_security_groups(GroupIds=external_ids)
    by_id = {sg["GroupId"]: sg for sg in response.get("SecurityGroups", [])}

    # The mesh lives in the VPC of the cluster's default node security group
    default_group = by_id.get(default_security_group_id)
    vpc_id = default_group.get("VpcId") if default_group else None

    node_security_groups = find_mesh_security_groups(ec2, plan.namePrefix, vpc_id)
    for spec in plan.groups:
        if spec.index not in node_security_groups:
            report.missing_groups.append(spec.name)

    refs: Dict[str, Optional[Dict[str, Any]]] = {
        DEFAULT_GROUP: default_group,
        CLUSTER_GROUP: (
            by_id.get(control_plane_security_group_id)
            if control_plane_security_group_id
            else None
        ),
    }

    def resolve(ref: GroupRef) -> Optional[Dict[str, Any]]:
        if isinstance(ref, int):
            return node_security_groups.get(ref)
        return refs[ref]

    for rule in plan.rules:
        destination = resolve(rule.destination)
        source = resolve(rule.source)

        if rule.destination == CLUSTER_GROUP and not control_plane_security_group_id:
            report.unchecked_rules.append(rule)
            continue

        if destination is None or source is None:
            report.missing_rules.append(rule)
            continue

        if not any(
            permission_allows(permission, rule, source["GroupId"])
            for permission in destination.get("IpPermissions", [])
        ):
            report.missing_rules.append(rule)

    logger.debug(
        f"Audited {len(plan.rules)} rules of {plan.namePrefix}: "
        f"{len(report.missing_rules)} missing, {len(report.unchecked_rules)} unchecked"
    )

    return report
