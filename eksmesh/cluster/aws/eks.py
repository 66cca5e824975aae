from __future__ import annotations

from typing import List, Optional

import pulumi
import pulumi_aws as aws
import pulumi_awsx as awsx
import pulumi_eks as eks

from eksmesh.cluster.aws.security_group import PulumiMeshEmitter
from eksmesh.cluster.context import Context
from eksmesh.config import NodeGroupConfig
from eksmesh.mesh.builder import NodeSecurityGroupData, build_security_mesh
from eksmesh.utils import kubify_name, save_kubeconfig


def _ignore_tags_transformation(
    args: pulumi.ResourceTransformationArgs,
) -> Optional[pulumi.ResourceTransformationResult]:
    """
    EKS adds tags to VPC and Subnet resources that are not managed by Pulumi. This function ignores those tags so that Pulumi does not try to remove them.

    Args:
        args (pulumi.ResourceTransformationArgs): The arguments containing the resource properties and options.

    Returns:
        pulumi.ResourceTransformationResult | None: The transformed resource properties and options, or None if no transformation is needed.
    """
    if args.type_ == "aws:ec2/vpc:Vpc" or args.type_ == "aws:ec2/subnet:Subnet":
        return pulumi.ResourceTransformationResult(
            props=args.props,
            opts=pulumi.ResourceOptions.merge(
                args.opts, pulumi.ResourceOptions(ignore_changes=["tags"])
            ),
        )
    return None


def create_worker_role(cluster_name: str) -> aws.iam.Role:
    managed_policy_arns = [
        "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy",
        "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy",
        "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly",
    ]
    assume_role_policy = aws.iam.get_policy_document(
        statements=[
            aws.iam.GetPolicyDocumentStatementArgs(
                actions=["sts:AssumeRole"],
                effect="Allow",
                principals=[
                    aws.iam.GetPolicyDocumentStatementPrincipalArgs(
                        type="Service",
                        identifiers=["ec2.amazonaws.com"],
                    ),
                ],
            ),
        ],
    ).json

    return aws.iam.Role(
        f"{cluster_name}-eks-worker-role",
        assume_role_policy=assume_role_policy,
        managed_policy_arns=managed_policy_arns,
    )


def create_node_groups(
    ctx: Context,
    cluster: eks.Cluster,
    vpc: awsx.ec2.Vpc,
    instance_profile: aws.iam.InstanceProfile,
    node_security_groups: List[NodeSecurityGroupData],
) -> None:
    """
    Creates a self-managed node group for each node group in the configuration.

    Node group ``i`` is attached to the ``i``-th node security group together with
    the rule letting it reach the control plane.

    Args:
        ctx (Context): The provisioning context.
        cluster (eks.Cluster): The EKS cluster to create the node groups in.
        vpc (awsx.ec2.Vpc): The VPC whose private subnets host the nodes.
        instance_profile (aws.iam.InstanceProfile): The instance profile of the nodes.
        node_security_groups (List[NodeSecurityGroupData]): The mesh, in node group order.

    Returns:
        None
    """
    cluster_name = ctx.cluster_name
    node_groups: List[NodeGroupConfig] = ctx.cloud_config.nodeGroups

    for node_group, security_group in zip(node_groups, node_security_groups):
        desired_nodes = (
            node_group.desiredNodes
            if node_group.desiredNodes is not None
            else node_group.minNodes
        )

        eks.NodeGroupV2(
            f"{cluster_name}-{kubify_name(node_group.name)}-group",
            cluster=cluster,
            instance_type=node_group.nodeType,
            desired_capacity=desired_nodes,
            min_size=node_group.minNodes,
            max_size=node_group.maxNodes,
            spot_price=node_group.spotPrice,
            labels={
                "size": node_group.nodeType,
                "group": node_group.name,
                **node_group.labels,
            },
            instance_profile=instance_profile,
            node_subnet_ids=vpc.private_subnet_ids,
            node_associate_public_ip_address=False,
            node_security_group=security_group.node_security_group,
            cluster_ingress_rule=security_group.cluster_ingress_rule,
        )


def create_k8s_cluster(ctx: Context) -> eks.Cluster:
    """
    Provisions an AWS EKS cluster whose node groups are isolated in their own
    security groups, meshed so that they behave like one shared security group.

    Returns:
        eks.Cluster
    """
    cluster_name = ctx.cluster_name
    aws_config = ctx.cloud_config

    worker_role = create_worker_role(cluster_name)
    instance_profile = aws.iam.InstanceProfile(
        f"{cluster_name}-instance-profile", role=worker_role.name
    )

    # Create a VPC for our cluster
    vpc = awsx.ec2.Vpc(
        f"{cluster_name}-vpc",
        subnet_strategy=awsx.ec2.SubnetAllocationStrategy.AUTO,
        # AWS needs these tags for creating load balancers
        # See https://repost.aws/knowledge-center/eks-vpc-subnet-discovery
        subnet_specs=[
            {
                "type": awsx.ec2.SubnetType.PUBLIC,
                "tags": {"kubernetes.io/role/elb": "1"},
            },
            {
                "type": awsx.ec2.SubnetType.PRIVATE,
                "tags": {"kubernetes.io/role/internal-elb": "1"},
            },
        ],
        opts=pulumi.ResourceOptions(transformations=[_ignore_tags_transformation]),
    )

    cluster = eks.Cluster(
        cluster_name,
        vpc_id=vpc.vpc_id,
        public_subnet_ids=vpc.public_subnet_ids,
        private_subnet_ids=vpc.private_subnet_ids,
        node_associate_public_ip_address=False,
        skip_default_node_group=True,
        version=aws_config.cluster.version,
        instance_roles=[worker_role],
    )

    node_security_groups = build_security_mesh(
        aws_config.mesh_name_prefix,
        len(aws_config.nodeGroups),
        vpc,
        cluster,
        emitter=PulumiMeshEmitter(cluster_name=cluster.eks_cluster.name),
        control_plane_port=aws_config.mesh.controlPlanePort,
        allow_default_ingress=aws_config.mesh.allowDefaultIngress,
    )

    create_node_groups(ctx, cluster, vpc, instance_profile, node_security_groups)

    pulumi.export("kubeconfig", cluster.kubeconfig)
    pulumi.export("defaultSecurityGroupId", cluster.node_security_group.id)
    pulumi.export("controlPlaneSecurityGroupId", cluster.cluster_security_group.id)
    pulumi.export(
        "nodeSecurityGroupIds",
        [data.node_security_group.id for data in node_security_groups],
    )

    if ctx.should_save_kubeconfig:
        cluster.kubeconfig_json.apply(
            lambda kubeconfig_json: save_kubeconfig(cluster_name, kubeconfig_json)
        )

    return cluster
