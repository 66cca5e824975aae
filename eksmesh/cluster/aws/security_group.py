from __future__ import annotations

from typing import Any, Dict, Optional

import pulumi
import pulumi_aws as aws
from pulumi import Input

from eksmesh.constants import MESH_INDEX_TAG_KEY, MESH_TAG_KEY
from eksmesh.mesh.emitter import MeshEmitter, NetworkRef
from eksmesh.mesh.plan import RuleSpec, SecurityGroupSpec


def security_group_tags(
    spec: SecurityGroupSpec, cluster_name: Optional[Input[str]] = None
) -> Input[Dict[str, str]]:
    """
    Builds the tags of a node security group.

    The mesh tags make the group discoverable again from its prefix and index.
    When the cluster name is known, the group is also tagged as owned by the
    cluster, which is what EKS expects for node security groups.
    """
    tags = {
        "Name": spec.name,
        MESH_TAG_KEY: spec.namePrefix,
        MESH_INDEX_TAG_KEY: str(spec.index),
    }
    if cluster_name is None:
        return tags

    return pulumi.Output.from_input(cluster_name).apply(
        lambda name: {**tags, f"kubernetes.io/cluster/{name}": "owned"}
    )


class PulumiMeshEmitter(MeshEmitter):
    """
    Declares the mesh as ``aws.ec2.SecurityGroup`` and ``aws.ec2.SecurityGroupRule``
    resources in the current Pulumi program.

    Every node security group comes with the rules EKS needs for a worker
    security group: all egress, all traffic between the nodes of the group, and
    the control plane reaching the kubelets and the extension API servers.
    """

    def __init__(
        self,
        cluster_name: Optional[Input[str]] = None,
        opts: Optional[pulumi.ResourceOptions] = None,
    ) -> None:
        super().__init__()
        self.cluster_name = cluster_name
        self.opts = opts

    def default_security_group(self, cluster: Any) -> Any:
        return cluster.node_security_group

    def control_plane_security_group(self, cluster: Any) -> Any:
        return cluster.cluster_security_group

    def _create_security_group(
        self, spec: SecurityGroupSpec, network: NetworkRef, control_plane: Any
    ) -> aws.ec2.SecurityGroup:
        node_security_group = aws.ec2.SecurityGroup(
            spec.name,
            vpc_id=network.vpc_id,
            description=spec.description,
            # Mesh groups reference each other, so rules must go before the groups
            revoke_rules_on_delete=True,
            tags=security_group_tags(spec, self.cluster_name),
            opts=self.opts,
        )

        aws.ec2.SecurityGroupRule(
            f"{spec.name}-eksNodeIngressRule",
            description="Allow nodes to communicate with each other",
            type="ingress",
            from_port=0,
            to_port=0,
            protocol="-1",
            self=True,
            security_group_id=node_security_group.id,
            opts=self.opts,
        )

        aws.ec2.SecurityGroupRule(
            f"{spec.name}-eksNodeClusterIngressRule",
            description="Allow worker Kubelets and pods to receive communication from the cluster control plane",
            type="ingress",
            from_port=1025,
            to_port=65535,
            protocol="tcp",
            security_group_id=node_security_group.id,
            source_security_group_id=control_plane.id,
            opts=self.opts,
        )

        aws.ec2.SecurityGroupRule(
            f"{spec.name}-eksExtApiServerClusterIngressRule",
            description="Allow pods running extension API servers on port 443 to receive communication from cluster control plane",
            type="ingress",
            from_port=443,
            to_port=443,
            protocol="tcp",
            security_group_id=node_security_group.id,
            source_security_group_id=control_plane.id,
            opts=self.opts,
        )

        aws.ec2.SecurityGroupRule(
            f"{spec.name}-eksNodeInternetEgressRule",
            description="Allow internet access",
            type="egress",
            from_port=0,
            to_port=0,
            protocol="-1",
            cidr_blocks=["0.0.0.0/0"],
            security_group_id=node_security_group.id,
            opts=self.opts,
        )

        return node_security_group

    def _create_ingress_rule(
        self, spec: RuleSpec, source: Any, destination: Any
    ) -> aws.ec2.SecurityGroupRule:
        return aws.ec2.SecurityGroupRule(
            spec.name,
            description=spec.description,
            type="ingress",
            from_port=spec.fromPort,
            to_port=spec.toPort,
            protocol=spec.protocol,
            security_group_id=destination.id,
            source_security_group_id=source.id,
            opts=self.opts,
        )
