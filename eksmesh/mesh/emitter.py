from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Protocol

from eksmesh.logger import logger
from eksmesh.mesh.plan import RuleSpec, SecurityGroupSpec


class NetworkRef(Protocol):
    vpc_id: Any


class MeshEmitter(ABC):
    """
    Declares the resources of a mesh to a provisioning engine.

    Declarations are idempotent by name: declaring a resource whose name was
    already declared through this emitter returns the existing handle instead
    of creating a second resource.
    """

    def __init__(self) -> None:
        self._declared: Dict[str, Any] = {}

    @abstractmethod
    def default_security_group(self, cluster: Any) -> Any:
        pass

    @abstractmethod
    def control_plane_security_group(self, cluster: Any) -> Any:
        pass

    @abstractmethod
    def _create_security_group(
        self, spec: SecurityGroupSpec, network: NetworkRef, control_plane: Any
    ) -> Any:
        pass

    @abstractmethod
    def _create_ingress_rule(self, spec: RuleSpec, source: Any, destination: Any) -> Any:
        pass

    def get(self, name: str) -> Any:
        return self._declared.get(name)

    def security_group(
        self, spec: SecurityGroupSpec, network: NetworkRef, control_plane: Any
    ) -> Any:
        existing = self.get(spec.name)
        if existing is not None:
            logger.debug(f"Security group {spec.name} is already declared")
            return existing

        logger.debug(f"Declaring security group {spec.name}")
        handle = self._create_security_group(spec, network, control_plane)
        self._declared[spec.name] = handle
        return handle

    def ingress_rule(self, spec: RuleSpec, source: Any, destination: Any) -> Any:
        existing = self.get(spec.name)
        if existing is not None:
            logger.debug(f"Ingress rule {spec.name} is already declared")
            return existing

        logger.debug(f"Declaring ingress rule {spec.name}: {spec.edge()}")
        handle = self._create_ingress_rule(spec, source, destination)
        self._declared[spec.name] = handle
        return handle
