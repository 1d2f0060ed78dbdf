"""
Base Service Interface

Lifecycle contract for the Living Heirloom services that own long-lived
resources: the configuration file, the inference runtime and the voice
cloning client.
"""

import time
import logging
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

from heirloom.models.error import HeirloomError
from heirloom.models.service_enums import ServiceStatus


class BaseService(ABC):
    """
    Base class for services with a start/stop lifecycle.

    Subclasses report health as ``(is_healthy, error)`` rather than raising, so
    a supervisor can poll every service the same way.

    Attributes:
        service_name: Name used in log messages and status reports
        status: Current ServiceStatus
        logger: Logger named after the concrete class
    """

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.status = ServiceStatus.STOPPED
        self.logger = logging.getLogger(self.__class__.__name__)
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None

    @abstractmethod
    async def start(self) -> bool:
        """
        Acquire the service's resources.

        Returns:
            bool: True if the service is running afterwards
        """

    @abstractmethod
    async def stop(self) -> bool:
        """
        Release the service's resources.

        Returns:
            bool: True if the service stopped cleanly
        """

    @abstractmethod
    async def health_check(self) -> tuple[bool, Optional[HeirloomError]]:
        """
        Report whether the service can do its work right now.

        Returns:
            tuple[bool, Optional[HeirloomError]]: (is_healthy, reason_if_not)
        """

    def is_running(self) -> bool:
        return self.status == ServiceStatus.RUNNING

    @property
    def uptime(self) -> Optional[float]:
        """Seconds since the service last entered RUNNING, None while not running."""
        if not self.is_running() or self._started_at is None:
            return None
        return time.time() - self._started_at

    def get_status_info(self) -> Dict[str, Any]:
        return {
            "service_name": self.service_name,
            "status": self.status.value,
            "is_running": self.is_running(),
            "uptime": self.uptime,
            "stopped_at": self._stopped_at,
        }

    async def _update_status(self, new_status: ServiceStatus):
        old_status = self.status
        if old_status == new_status:
            return
        self.status = new_status
        self.logger.info(f"Service '{self.service_name}' status changed: {old_status.value} -> {new_status.value}")

        if new_status == ServiceStatus.RUNNING:
            self._started_at = time.time()
        elif new_status == ServiceStatus.STOPPED:
            self._stopped_at = time.time()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.service_name}, status={self.status.value})"
