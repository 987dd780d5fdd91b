from api.src.routes.health import router as health_router
from api.src.routes.pipelines import router as pipelines_router
from api.src.routes.webhooks import router as webhooks_router
from api.src.routes.deployments import router as deployments_router

__all__ = ["health_router", "pipelines_router", "webhooks_router", "deployments_router"]
