from __future__ import annotations

import json
import os
import re
from enum import Enum
from functools import lru_cache
from io import StringIO
from pathlib import Path
from typing import Any, Dict, Optional

import boto3
from ruamel.yaml import YAML

from eksmesh.constants import HOME_ENV_VAR, PROJECT_NAME, PULUMI_STACK_NAME


def camel_to_kebab(name: str) -> str:
    """
    Converts a camel case string to kebab case.

    Args:
        name (str): The camel case string to be converted.

    Returns:
        str: The kebab case string.

    Example:
        >>> camel_to_kebab("camelCaseString")
        'camel-case-string'
    """
    name = re.sub("(.)([A-Z][a-z]+)", r"\1-\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1-\2", name).lower()


def kubify_name(old: str) -> str:
    """
    Convert a string into a valid Kubernetes name.

    This function takes a string, converts it to lowercase, replaces disallowed characters with '-',
    trims leading non-alphabetic characters, trims trailing non-alphanumeric characters, and truncates
    it to a maximum length of 63 characters to create a valid Kubernetes name.

    Args:
        old (str): The original string to be converted.

    Returns:
        str: The converted string that is a valid Kubernetes name.

    Raises:
        ValueError: If the resulting name is empty.
    """
    max_len = 63

    new_name = old.lower()

    # replace disallowed chars with '-'
    new_name = re.sub(r"[^-a-z0-9]", "-", new_name)

    # trim leading non-alphabetic
    new_name = re.sub(r"^[^a-z]+", "", new_name)

    # trim trailing
    new_name = re.sub(r"[^a-z0-9]+$", "", new_name)

    # truncate to length
    if len(new_name) > max_len:
        new_name = new_name[:max_len]

    if len(new_name) == 0:
        raise ValueError(f"Name: {old} can't be converted to a valid Kubernetes name")

    return new_name


def get_project_data_dir() -> str:
    """
    Get the project data directory.

    If the environment variable HOME_ENV_VAR is set, its value is returned.
    Otherwise, it returns the home directory appended with the kebab-case project name.

    Returns:
        str: The absolute path of the project data directory.
    """
    return os.environ.get(
        HOME_ENV_VAR, str(Path.home() / f".{camel_to_kebab(PROJECT_NAME)}")
    )


def get_pulumi_root() -> str:
    """
    Get the pulumi data directory.

    Returns:
        str: The pulumi data directory.
    """
    return str(Path(get_project_data_dir()) / "pulumi")


def to_yaml(obj: Dict[Any, Any]) -> str:
    """
    Converts an dictionary to a YAML string.

    Args:
        obj (dict): The dictionary to be converted.

    Returns:
        str: The YAML string.
    """
    yaml = YAML()
    yaml.indent(mapping=2, sequence=4, offset=2)
    buf = StringIO()
    yaml.dump(obj, buf)
    return buf.getvalue()


class PulumiStackKey(Enum):
    DEFAULT_SECURITY_GROUP = "default_security_group"
    CONTROL_PLANE_SECURITY_GROUP = "control_plane_security_group"


def read_pulumi_stack(cluster_name: str, key: str) -> Any:
    try:
        k = PulumiStackKey[key.upper()]
    except KeyError:
        raise ValueError(
            f"Invalid key: {key}. Expected one of: {list(PulumiStackKey.__members__.values())}"
        )
    stack_json = _load_pulumi_stack(cluster_name)

    return _read_pulumi_stack_by_key(stack_json, k)


@lru_cache(maxsize=100)
def _load_pulumi_stack(cluster_name: str) -> dict:
    pulumi_backend_url = os.environ.get("PULUMI_BACKEND_URL", "")

    if not pulumi_backend_url:
        raise Exception("Pulumi backend URL is not set")

    if pulumi_backend_url.startswith("file://"):
        pulumi_root = Path(get_pulumi_root())
        pulumi_stack_file = (
            pulumi_root
            / ".pulumi"
            / "stacks"
            / cluster_name
            / f"{PULUMI_STACK_NAME}.json"
        )
        stack_json = json.loads(pulumi_stack_file.read_text())
    elif pulumi_backend_url.startswith("s3://"):
        s3 = boto3.client("s3")
        response = s3.get_object(
            Bucket=pulumi_backend_url[5:],
            Key=f".pulumi/stacks/{cluster_name}/{PULUMI_STACK_NAME}.json",
        )
        stack_json = json.loads(response["Body"].read().decode("utf-8"))
    else:
        raise Exception("Unsupported Pulumi backend URL")

    return stack_json


def _read_pulumi_stack_by_key(stack_json: dict, k: PulumiStackKey) -> Any:
    resources = stack_json["checkpoint"]["latest"]["resources"]

    # The security group ids are exported by the provisioning program
    outputs = {
        PulumiStackKey.DEFAULT_SECURITY_GROUP: "defaultSecurityGroupId",
        PulumiStackKey.CONTROL_PLANE_SECURITY_GROUP: "controlPlaneSecurityGroupId",
    }

    for resource in resources:
        if resource["type"] == "pulumi:pulumi:Stack":
            stack_outputs = resource.get("outputs", {})
            if outputs[k] in stack_outputs:
                return stack_outputs[outputs[k]]

    raise Exception(f"{k.value} not found in the stack")


def get_cluster_data_dir(cluster_name: str) -> str:
    """
    Get the cluster data directory.

    Args:
        cluster_name (str): The name of the cluster.

    Returns:
        str: The cluster data directory.
    """
    return os.path.join(get_project_data_dir(), "clusters", cluster_name)


def save_kubeconfig(cluster_name: str, kubeconfig_json: Optional[str]) -> None:
    """
    Save the kubeconfig data as a YAML file named 'kubeconfig.yaml'.

    This function takes the kubeconfig data in JSON format, converts it to YAML,
    and saves it to a file named 'kubeconfig.yaml' under the cluster data directory.

    Args:
        cluster_name (str): The name of the cluster.
        kubeconfig_json (str): The kubeconfig data in JSON format.

    Returns:
        None
    """
    if kubeconfig_json is None:
        return

    kubeconfig_data = json.loads(kubeconfig_json)

    kubeconfig_file_path = os.path.join(
        get_cluster_data_dir(cluster_name), "kubeconfig.yaml"
    )
    os.makedirs(os.path.dirname(kubeconfig_file_path), exist_ok=True)

    with open(kubeconfig_file_path, "w") as f:
        f.write(to_yaml(kubeconfig_data))
