from __future__ import annotations

from typing import Optional

import fasteners

from eksmesh.config import AwsConfig, Config


class Context:
    _config: Optional[Config] = None

    _should_save_kubeconfig: bool = False

    def __init__(self) -> None:
        # The Pulumi program reads the config from other threads
        self._config_lock = fasteners.ReaderWriterLock()

    @fasteners.write_locked(lock="_config_lock")
    def set_config(self, config: Config) -> None:
        self._config = config

    @property
    @fasteners.read_locked(lock="_config_lock")
    def cloud_config(self) -> AwsConfig:
        if self._config is None:
            raise RuntimeError("Config is not set.")
        if self._config.aws is None:
            raise RuntimeError("Only AWS is supported.")

        return self._config.aws

    @property
    @fasteners.read_locked(lock="_config_lock")
    def cluster_name(self) -> str:
        # fasteners's inter thread reader lock is reentrant
        return self.cloud_config.cluster.name

    def set_should_save_kubeconfig(self, should_save_kubeconfig: bool) -> None:
        self._should_save_kubeconfig = should_save_kubeconfig

    @property
    def should_save_kubeconfig(self) -> bool:
        return self._should_save_kubeconfig
