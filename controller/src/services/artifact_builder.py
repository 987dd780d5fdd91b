"""
Artifact builder - turns a service revision into a tagged image.
"""

import logging
from typing import Dict, Optional

from pydantic import BaseModel

from controller.src.config import get_settings
from controller.src.errors import BuildError, ScanFailed
from controller.src.models.domain import (
    Environment,
    ImageReference,
    Revision,
    RunConfig,
    ServiceSpec,
    make_image_tag,
)

logger = logging.getLogger(__name__)
settings = get_settings()

class BuildRequest(BaseModel):
    service: ServiceSpec
    revision: Revision
    environment: Environment
    image: ImageReference
    build_args: Dict[str, str] = {}

class ArtifactBuilder:
    def __init__(self, build_service, scanner=None, repository: Optional[str] = None):
        self.build_service = build_service
        self.scanner = scanner
        self.repository = repository or settings.image_registry

    def image_for(
        self,
        service: ServiceSpec,
        revision: Revision,
        environment: Environment,
        run_number: int,
    ) -> ImageReference:
        return ImageReference(
            service=service.name,
            environment=environment,
            tag=make_image_tag(revision, environment, run_number),
            repository=self.repository,
        )

    async def build(
        self,
        service: ServiceSpec,
        revision: Revision,
        environment: Environment,
        run_number: int,
        config: RunConfig,
    ) -> ImageReference:
        """Build and push the image for one service."""
        request = BuildRequest(
            service=service,
            revision=revision,
            environment=environment,
            image=self.image_for(service, revision, environment, run_number),
            build_args=config.build_args_for(service),
        )
        logger.info(f"Building {request.image.ref}")

        try:
            return await self.build_service.build(request)
        except BuildError as e:
            e.environment = e.environment or environment.value
            e.service = e.service or service.name
            e.stage = e.stage or "build"
            raise

    async def scan(self, image: ImageReference):
        """Raise ScanFailed when the scanner reports blocking findings."""
        if self.scanner is None:
            return

        report = await self.scanner.scan(image)
        if not report.passed:
            findings = ", ".join(report.findings[:10]) or "scanner reported failure"
            raise ScanFailed(
                f"vulnerability scan failed: {findings}",
                environment=image.environment.value,
                service=image.service,
                stage="scan",
            )
        logger.info(f"Scan passed for {image.ref}")
