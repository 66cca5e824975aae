from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from ruamel.yaml import YAML

from eksmesh.constants import CONTROL_PLANE_PORT
from eksmesh.utils import to_yaml

CONFIG_VERSION = "1.0"


class EksMeshBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ClusterConfig(EksMeshBaseModel):
    """
    Represents the configuration for a cluster.
    """

    name: str = Field(..., description="The name of the cluster.")
    region: str = Field(..., description="The default region for the cluster.")
    version: Optional[str] = Field(
        None,
        description="The Kubernetes version of the control plane. If None, the EKS default is used.",
    )

    @field_validator("name", mode="before")
    def validate_name(cls, v: str) -> str:
        if not v or not str(v).strip():
            raise ValueError("Cluster name cannot be empty")
        return v

    @field_validator("version", mode="before")
    def reject_float_version(cls, v: Any) -> Any:
        # YAML reads an unquoted 1.30 as the float 1.3
        if isinstance(v, float):
            raise ValueError('Kubernetes version must be quoted, e.g. version: "1.30"')
        return v

    @field_validator("version")
    def validate_version(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not re.match(r"^\d+\.\d+$", v):
            raise ValueError('Kubernetes version must be in the format "x.y"')
        return v


class NodeGroupConfig(EksMeshBaseModel):
    """
    Represents a self-managed node group. Every node group gets its own
    security group, which is meshed with the security groups of all the other
    node groups and with the cluster's default node security group.
    """

    name: str = Field(..., description="The name of the node group.")
    nodeType: str = Field(..., description="The instance type of the nodes.")
    minNodes: int = Field(..., description="The minimum number of nodes.")
    maxNodes: int = Field(..., description="The maximum number of nodes.")
    desiredNodes: Optional[int] = Field(
        None,
        description="The desired number of nodes. Defaults to minNodes.",
    )
    spotPrice: Optional[str] = Field(
        None, description="The maximum spot price. If None, on-demand nodes are used."
    )
    labels: Dict[str, str] = Field(
        default_factory=dict, description="Kubernetes labels to put on the nodes."
    )

    @field_validator("minNodes")
    def validate_min_nodes(cls, v: int) -> int:
        if v < 0:
            raise ValueError("minNodes must be greater than or equal to 0")
        return v

    @model_validator(mode="after")
    def check_nodes_num(self) -> "NodeGroupConfig":
        if self.maxNodes < self.minNodes:
            raise ValueError("maxNodes must be greater than or equal to minNodes")

        if self.desiredNodes is not None:
            if not self.minNodes <= self.desiredNodes <= self.maxNodes:
                raise ValueError("desiredNodes must be between minNodes and maxNodes")
        return self


class MeshConfig(EksMeshBaseModel):
    """
    Represents the settings of the node group security mesh.
    """

    namePrefix: Optional[str] = Field(
        None,
        description='The prefix of every mesh resource name. Defaults to "<cluster name>-ng".',
    )
    controlPlanePort: int = Field(
        CONTROL_PLANE_PORT,
        description="The port node groups use to reach the control plane.",
    )
    allowDefaultIngress: bool = Field(
        True,
        description="Whether the default node security group may reach every node group.",
    )

    @field_validator("controlPlanePort")
    def validate_control_plane_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("controlPlanePort must be between 1 and 65535")
        return v


class AwsConfig(EksMeshBaseModel):
    """
    Represents the configuration for the AWS environment.
    """

    cluster: ClusterConfig = Field(
        ..., description="The configuration for the Kubernetes cluster."
    )
    mesh: MeshConfig = Field(
        default_factory=MeshConfig,
        description="The configuration for the node group security mesh.",
    )
    nodeGroups: List[NodeGroupConfig] = Field(
        default_factory=list,
        description="The node groups to create. Each one is attached to its own security group.",
    )

    @model_validator(mode="after")
    def check_node_group_names(self) -> "AwsConfig":
        # No node groups should have the same name
        node_group_names = set()

        for group in self.nodeGroups:
            if group.name in node_group_names:
                raise ValueError(f"Duplicate node group name: {group.name}")
            node_group_names.add(group.name)

        return self

    @property
    def mesh_name_prefix(self) -> str:
        return self.mesh.namePrefix or f"{self.cluster.name}-ng"


class Config(EksMeshBaseModel):
    """
    Configuration class for managing cloud cluster settings.
    """

    version: str = Field(..., description="The version of the configuration.")
    aws: Optional[AwsConfig] = Field(None, description="The AWS cloud configuration.")

    @model_validator(mode="before")
    def check_one_field(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validates that exactly one cloud configuration is provided.

        Args:
            values (Dict[str, Any]): Dictionary of field values for the Config class.

        Returns:
            Dict[str, Any]: The input values if validation is successful.

        Raises:
            ValueError: If no cloud configuration is provided.
        """
        if values.get("aws", None) is None:
            raise ValueError("Exactly one cloud configuration must be provided")

        return values

    @field_validator("version")
    def validate_version(cls, v: str) -> str:
        if not re.match(r"^\d+\.\d+$", v):
            raise ValueError('version must be in the format "x.x"')
        return v


def generate_yaml(config: Config) -> str:
    """
    Generate a YAML string representation of the given config object.

    Args:
        config (Config): The config object to generate YAML from.

    Returns:
        str: The YAML string representation of the config object.
    """
    return to_yaml(config.model_dump(exclude_none=True))


def parse_yaml(yaml_str: str) -> Config:
    """
    Parse a YAML string and return a Config object.

    Args:
        yaml_str (str): The YAML string to parse.

    Returns:
        Config: The parsed Config object.
    """
    yaml = YAML()
    data = yaml.load(yaml_str)
    if not data:
        raise ValueError("Invalid configuration: The configuration is empty.")

    version = data.get("version", None)
    if version is None:
        raise ValueError("Invalid configuration: The 'version' field is missing.")

    version = str(version)
    if not re.match(r"^\d+\.\d+$", version):
        raise ValueError('version must be in the format "x.x"')

    # Make sure the major version matches
    major_version, minor_version = map(int, version.split("."))
    tool_major_version, tool_minor_version = map(int, CONFIG_VERSION.split("."))

    if major_version < tool_major_version:
        raise ValueError(
            f"Invalid configuration: This tool supports versions starting from {tool_major_version}.0."
            " Please use an older version of the tool if you need to work with a previous configuration version."
        )
    elif major_version > tool_major_version:
        raise ValueError(
            f"Invalid configuration: Your current tool is too old. Please upgrade your tool to handle this configuration."
        )
    elif minor_version > tool_minor_version:  # No forward compatibility
        raise ValueError(
            f"Invalid configuration: This tool supports versions up to {tool_major_version}.{tool_minor_version}."
            " Please upgrade your tool to handle this configuration."
        )

    data["version"] = version
    return Config(**data)
