"""Storage of per-organization adapter configurations.

The orchestrator looks up the configuration of each candidate channel for
the sending organization before asking the factory for an adapter. A
missing or disabled configuration is reported as CHANNEL_NOT_CONFIGURED.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from infrastructure.communications.models import AdapterConfiguration, ChannelType
from infrastructure.logging import get_module_logger

logger = get_module_logger()


class AdapterConfigurationStore(ABC):
    """Abstract store of AdapterConfiguration keyed by (type, organization)."""

    @abstractmethod
    def get(
        self, adapter_type: ChannelType, organization_id: str
    ) -> Optional[AdapterConfiguration]:
        """Configuration for the key, or None."""

    @abstractmethod
    def put(self, config: AdapterConfiguration) -> None:
        """Create or replace the configuration for ``config.key``."""

    @abstractmethod
    def delete(self, adapter_type: ChannelType, organization_id: str) -> bool:
        """Remove a configuration. Returns False if none existed."""

    @abstractmethod
    def list_for_organization(self, organization_id: str) -> List[AdapterConfiguration]:
        """All configurations of one organization."""


class InMemoryAdapterConfigurationStore(AdapterConfigurationStore):
    """Dict-backed store. Configurations are immutable, so no copies are needed."""

    def __init__(self, configs: Optional[List[AdapterConfiguration]] = None):
        self._configs: Dict[Tuple[ChannelType, str], AdapterConfiguration] = {}
        self._lock = threading.Lock()
        for config in configs or []:
            self.put(config)

    def get(
        self, adapter_type: ChannelType, organization_id: str
    ) -> Optional[AdapterConfiguration]:
        with self._lock:
            return self._configs.get((adapter_type, organization_id))

    def put(self, config: AdapterConfiguration) -> None:
        with self._lock:
            replaced = config.key in self._configs
            self._configs[config.key] = config
        logger.info(
            "adapter_configuration_saved",
            adapter_type=config.adapter_type.value,
            organization_id=config.organization_id,
            enabled=config.enabled,
            replaced=replaced,
        )

    def delete(self, adapter_type: ChannelType, organization_id: str) -> bool:
        with self._lock:
            return self._configs.pop((adapter_type, organization_id), None) is not None

    def list_for_organization(self, organization_id: str) -> List[AdapterConfiguration]:
        with self._lock:
            return [c for c in self._configs.values() if c.organization_id == organization_id]
