"""
Service discovery - waits for an exposed service to get a routable address.
"""

import logging
from typing import Dict, Optional, Tuple

from controller.src.config import get_settings
from controller.src.errors import AddressResolutionTimeout, NotExposed
from controller.src.models.domain import Address, Environment, ServiceSpec
from controller.src.services.polling import poll_until

logger = logging.getLogger(__name__)
settings = get_settings()

class ServiceDiscoveryResolver:
    """
    Resolved addresses are snapshots: once resolved, the same address is
    returned until a caller asks for `refresh=True`.
    """

    def __init__(
        self,
        address_provider,
        services: Dict[str, ServiceSpec],
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        self.address_provider = address_provider
        self.services = services
        self.timeout = timeout if timeout is not None else settings.address_timeout
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.address_poll_interval
        )
        self._resolved: Dict[Tuple[Environment, str], Address] = {}

    async def resolve_address(
        self,
        environment: Environment,
        service: str,
        refresh: bool = False,
    ) -> Address:
        spec = self.services.get(service)
        if spec is None or not spec.exposed:
            raise NotExposed(
                f"service '{service}' has no externally routable endpoint",
                environment=environment.value,
                service=service,
                stage="discover",
            )

        key = (environment, service)
        if not refresh and key in self._resolved:
            return self._resolved[key]

        async def check():
            try:
                return await self.address_provider.get_external_address(environment, service)
            except Exception as e:
                logger.warning(f"Error reading address of {service} in {environment.value}: {e}")
                return None

        logger.info(f"Waiting for external address of {service} in {environment.value}")
        address = await poll_until(check, self.timeout, self.poll_interval)

        if address is None:
            raise AddressResolutionTimeout(
                f"no address assigned within {self.timeout}s",
                environment=environment.value,
                service=service,
                stage="discover",
            )

        logger.info(f"Resolved {service} in {environment.value} to {address.url}")
        self._resolved[key] = address
        return address

    def cached(self, environment: Environment, service: str) -> Optional[Address]:
        return self._resolved.get((environment, service))
