"""
Domain models shared by the orchestrator components.
"""

from pydantic import BaseModel, ConfigDict
from typing import List, Dict
from enum import Enum

class Environment(str, Enum):
    STAGING = "staging"
    PRODUCTION = "production"

class Revision(BaseModel):
    model_config = ConfigDict(frozen=True)

    sha: str
    branch: str

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

class EnvironmentPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    environment: Environment
    namespace: str
    requires_approval: bool = False
    auto_rollback: bool = False
    scan_required: bool = False

class ServiceSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    context: str
    dockerfile: str = "Dockerfile"
    port: int = 80
    health_path: str = "/health"
    exposed: bool = False
    depends_on: List[str] = []
    # dependency name -> build arg that receives its resolved address
    address_build_args: Dict[str, str] = {}

class ImageReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    service: str
    environment: Environment
    tag: str
    repository: str

    @property
    def ref(self) -> str:
        return f"{self.repository}/{self.service}:{self.tag}"

class Address(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str
    port: int
    scheme: str = "http"

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

class RunConfig(BaseModel):
    """Resolved dependency addresses for one run. Replaced, never mutated."""

    model_config = ConfigDict(frozen=True)

    addresses: Dict[str, Address] = {}

    def with_address(self, service: str, address: Address) -> "RunConfig":
        return RunConfig(addresses={**self.addresses, service: address})

    def build_args_for(self, spec: ServiceSpec) -> Dict[str, str]:
        return {
            arg: self.addresses[dep].url
            for dep, arg in spec.address_build_args.items()
            if dep in self.addresses
        }

def make_image_tag(revision: Revision, environment: Environment, run_number: int) -> str:
    """Tag unique per run: environment, revision and run number."""
    return f"{environment.value}-{revision.short_sha}-{run_number}"
