"""
deployx controller - main entry point.
"""

import logging
import sys

from controller.src.config import get_settings
from controller.src.k8s.client import check_namespaces, ensure_namespace, init_k8s_client
from controller.src.worker import run_worker

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

def main():
    settings = get_settings()

    logger.info("Starting deployx controller")
    logger.info(
        f"Environments: staging={settings.staging_namespace}, "
        f"production={settings.production_namespace}"
    )
    logger.info(f"Builds run in {settings.k8s_build_namespace}, images go to {settings.image_registry}")

    if not init_k8s_client():
        logger.error("Failed to initialize Kubernetes client")
        sys.exit(1)

    try:
        ensure_namespace()
        if not check_namespaces([settings.staging_namespace, settings.production_namespace]):
            sys.exit(1)
    except Exception as e:
        logger.error(f"Failed to check namespaces: {e}")
        sys.exit(1)

    run_worker()

if __name__ == "__main__":
    main()
