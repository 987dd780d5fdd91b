from controller.src.k8s.client import (
    init_k8s_client,
    get_apps_api,
    get_batch_api,
    get_core_api,
    ensure_namespace,
    check_namespaces,
    delete_job,
)
from controller.src.k8s.job_builder import (
    build_job_name,
    build_kaniko_job,
    build_trivy_job,
    get_job_status,
    parse_trivy_findings,
)
from controller.src.k8s.cluster import (
    KubernetesBuildService,
    KubernetesCluster,
    KubernetesScanner,
    get_rollout_status,
)

__all__ = [
    "init_k8s_client",
    "get_apps_api",
    "get_batch_api",
    "get_core_api",
    "ensure_namespace",
    "check_namespaces",
    "delete_job",
    "build_job_name",
    "build_kaniko_job",
    "build_trivy_job",
    "get_job_status",
    "parse_trivy_findings",
    "KubernetesBuildService",
    "KubernetesCluster",
    "KubernetesScanner",
    "get_rollout_status",
]
