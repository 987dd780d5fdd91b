"""
Kubernetes API clients shared by the build, scan and rollout code.
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from typing import Iterable, Optional
import logging

from controller.src.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

_apps_v1: Optional[client.AppsV1Api] = None
_batch_v1: Optional[client.BatchV1Api] = None
_core_v1: Optional[client.CoreV1Api] = None

def init_k8s_client() -> bool:
    """Load cluster credentials and check the API server answers."""
    global _apps_v1, _batch_v1, _core_v1

    try:
        if settings.k8s_in_cluster:
            config.load_incluster_config()
        else:
            config.load_kube_config()

        api_client = client.ApiClient()
        _apps_v1 = client.AppsV1Api(api_client)
        _batch_v1 = client.BatchV1Api(api_client)
        _core_v1 = client.CoreV1Api(api_client)

        _core_v1.list_namespace(limit=1)
        mode = "in-cluster" if settings.k8s_in_cluster else "kubeconfig"
        logger.info(f"Kubernetes client initialized ({mode})")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize Kubernetes client: {e}")
        return False

def get_apps_api() -> client.AppsV1Api:
    """Deployments: image patches and rollout status."""
    if _apps_v1 is None:
        init_k8s_client()
    return _apps_v1

def get_batch_api() -> client.BatchV1Api:
    """Jobs: kaniko builds and trivy scans."""
    if _batch_v1 is None:
        init_k8s_client()
    return _batch_v1

def get_core_api() -> client.CoreV1Api:
    """Namespaces, job pods and load-balancer Services."""
    if _core_v1 is None:
        init_k8s_client()
    return _core_v1

def ensure_namespace(namespace: Optional[str] = None):
    """Create `namespace` (the build namespace by default) if it is missing."""
    namespace = namespace or settings.k8s_build_namespace
    core_v1 = get_core_api()

    try:
        core_v1.read_namespace(name=namespace)
        return
    except ApiException as e:
        if e.status != 404:
            raise

    core_v1.create_namespace(
        body=client.V1Namespace(
            metadata=client.V1ObjectMeta(name=namespace, labels={"app": "deployx"})
        )
    )
    logger.info(f"Created namespace '{namespace}'")

def check_namespaces(namespaces: Iterable[str]) -> bool:
    """
    Environment namespaces hold the Deployments we patch, so they are never
    created here. Returns False if any is missing.
    """
    core_v1 = get_core_api()
    ok = True

    for namespace in namespaces:
        try:
            core_v1.read_namespace(name=namespace)
        except ApiException as e:
            if e.status != 404:
                raise
            logger.error(f"Environment namespace '{namespace}' does not exist")
            ok = False
    return ok

def delete_job(job_name: str, namespace: Optional[str] = None):
    """Delete a job and its pods. A missing job is not an error."""
    namespace = namespace or settings.k8s_build_namespace

    try:
        get_batch_api().delete_namespaced_job(
            name=job_name,
            namespace=namespace,
            body=client.V1DeleteOptions(propagation_policy="Foreground"),
        )
        logger.info(f"Deleted job {job_name}")
    except ApiException as e:
        if e.status != 404:
            logger.error(f"Failed to delete job {job_name}: {e}")
