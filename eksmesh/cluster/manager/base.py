from __future__ import annotations

from abc import ABC, abstractmethod
from functools import cached_property
from typing import Any

from pulumi import automation as auto

from eksmesh.cluster.context import Context
from eksmesh.config import AwsConfig, Config
from eksmesh.constants import PULUMI_STACK_NAME
from eksmesh.logger import logger


class ClusterManager(ABC):
    """
    Abstract base class for a cluster manager.

    A ClusterManager is responsible for managing a cluster of compute resources.

    Subclasses must implement the abstract methods defined in this class.
    """

    config: Config
    cloud_config: AwsConfig

    def __init__(self, config: Config) -> None:
        if config.aws is None:
            raise ValueError("Only AWS is supported.")
        self.config = config
        self.cloud_config = config.aws
        self.ctx = Context()
        self.ctx.set_config(config)

    @abstractmethod
    def provision_k8s(self) -> None:
        pass

    def _stack_for_program(self, program: auto.PulumiFn) -> auto.Stack:
        return auto.create_or_select_stack(
            stack_name=PULUMI_STACK_NAME,
            project_name=self.cloud_config.cluster.name,
            program=program,
        )

    @cached_property
    def _stack(self) -> auto.Stack:
        def program() -> None:
            self.provision_k8s()

        return self._stack_for_program(program)

    def create(self) -> None:
        self._stack.set_config(
            "aws:region", auto.ConfigValue(value=self.cloud_config.cluster.region)
        )

        logger.info("Creating resources...")
        result = self._stack.up(on_output=logger.info)

        node_security_groups = result.outputs.get("nodeSecurityGroupIds")
        if node_security_groups is not None:
            logger.info(
                f"Node security groups: {', '.join(node_security_groups.value)}"
            )

    def destroy(self) -> Any:
        logger.info("Destroying resources...")
        return self._stack.destroy(on_output=logger.info)

    def refresh(self) -> None:
        logger.info("Refreshing the stack...")
        self._stack.refresh(on_output=logger.info)

    def preview(self, *args: Any, **kwargs: Any) -> None:
        if not "on_output" in kwargs:
            kwargs["on_output"] = logger.info
        self._stack.preview(*args, **kwargs)
