"""
Health prober - polls a service's health endpoint until healthy or timed out.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional

import httpx

from controller.src.config import get_settings
from controller.src.models.domain import Environment, EnvironmentPolicy, ServiceSpec
from controller.src.services.polling import poll_until

logger = logging.getLogger(__name__)
settings = get_settings()

async def http_probe(url: str) -> bool:
    """Single health request. Any transport error counts as unhealthy."""
    try:
        async with httpx.AsyncClient(timeout=settings.health_request_timeout) as client:
            response = await client.get(url)
            return response.is_success
    except httpx.HTTPError as e:
        logger.debug(f"Health probe {url} failed: {e}")
        return False

class HealthProber:
    def __init__(
        self,
        services: Dict[str, ServiceSpec],
        policies: Dict[Environment, EnvironmentPolicy],
        resolver=None,
        probe: Optional[Callable[[str], Awaitable[bool]]] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        self.services = services
        self.policies = policies
        self.resolver = resolver
        self.probe = probe or http_probe
        self.timeout = timeout if timeout is not None else settings.health_timeout
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.health_poll_interval
        )

    def health_url(self, environment: Environment, service: str) -> str:
        """External address if one was resolved, cluster DNS otherwise."""
        spec = self.services[service]
        address = self.resolver.cached(environment, service) if self.resolver else None
        if address is not None:
            return f"{address.url}{spec.health_path}"

        namespace = self.policies[environment].namespace
        return f"http://{service}.{namespace}.svc.cluster.local:{spec.port}{spec.health_path}"

    async def wait_healthy(
        self,
        environment: Environment,
        service: str,
        timeout: Optional[float] = None,
    ) -> bool:
        timeout = timeout if timeout is not None else self.timeout
        url = self.health_url(environment, service)
        logger.info(f"Waiting for {service} in {environment.value} to report healthy ({url})")

        async def check():
            try:
                healthy = await self.probe(url)
            except Exception as e:
                logger.warning(f"Health probe for {service} raised: {e}")
                return None
            return True if healthy else None

        healthy = await poll_until(check, timeout, self.poll_interval)
        if healthy:
            logger.info(f"{service} in {environment.value} is healthy")
            return True

        logger.error(f"{service} in {environment.value} not healthy after {timeout}s")
        return False
