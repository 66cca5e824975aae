from eksmesh.cluster.aws.eks import create_k8s_cluster
from eksmesh.cluster.manager.base import ClusterManager
from eksmesh.config import Config


class AWSClusterManager(ClusterManager):
    """
    AWS-specific implementation of the ClusterManager abstract base class.

    Provisions an EKS cluster, its VPC and its node groups, each node group
    isolated in its own security group and meshed with the others.
    """

    def __init__(self, config: Config) -> None:
        super().__init__(config)

    def provision_k8s(self) -> None:
        create_k8s_cluster(self.ctx)
