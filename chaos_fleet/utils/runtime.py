import os
import datetime
from abc import ABC, abstractmethod
from typing import List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .exceptions import RuntimeCommandError, PrerequisiteError
from .functions import run_cmd, has_command
from .log import get_logger


logger = get_logger(__name__)

DEFAULT_CMD_TIMEOUT = 30.0  # sec


class ContainerRuntime(ABC):
    """Control-plane adapter: what is running, and how to bounce it."""

    name: str = "runtime"

    @abstractmethod
    def list_running(self) -> List[str]:
        pass

    @abstractmethod
    def is_running(self, name: str) -> bool:
        pass

    @abstractmethod
    def restart(self, name: str) -> bool:
        pass

    @abstractmethod
    def ping(self) -> bool:
        pass


#--------
# docker
#--------
class DockerRuntime(ContainerRuntime):
    name = "docker"

    def __init__(self, binary: str = "docker", timeout: float = DEFAULT_CMD_TIMEOUT) -> None:
        self.binary = binary
        self.timeout = timeout

    def _docker(self, *args: str, timeout: Optional[float] = None, check: bool = False):
        return run_cmd([self.binary, *args], timeout=timeout or self.timeout, check=check)

    def ping(self) -> bool:
        return self._docker("info").returncode == 0

    def list_running(self) -> List[str]:
        res = self._docker("ps", "--format", "{{.Names}}")
        if res.returncode != 0:
            raise RuntimeCommandError(f"Cannot enumerate containers: {res.stderr.strip()}")
        return [line.strip() for line in res.stdout.splitlines() if line.strip()]

    def status(self, name: str) -> Optional[str]:
        """Container state as reported by docker (running, paused, exited, ...); None if unknown."""
        res = self._docker("inspect", "--format", "{{.State.Status}}", name)
        if res.returncode != 0:
            return None
        return res.stdout.strip() or None

    def is_running(self, name: str) -> bool:
        # paused containers still report Running=true
        res = self._docker("inspect", "--format", "{{.State.Running}}", name)
        return res.returncode == 0 and res.stdout.strip() == "true"

    def restart(self, name: str) -> bool:
        return self._docker("restart", name, timeout=max(self.timeout, 60.0)).returncode == 0

    def pause(self, name: str) -> bool:
        return self._docker("pause", name).returncode == 0

    def unpause(self, name: str) -> bool:
        return self._docker("unpause", name).returncode == 0

    def start(self, name: str) -> bool:
        return self._docker("start", name).returncode == 0

    def stop(self, name: str) -> bool:
        return self._docker("stop", name, timeout=max(self.timeout, 60.0)).returncode == 0

    def logs(self, name: str, tail: int = 5) -> str:
        res = self._docker("logs", "--tail", str(tail), name)
        # docker writes container stderr to its own stderr
        return (res.stdout or "") + (res.stderr or "")

    def exec(self, name: str, *command: str) -> Optional[str]:
        res = self._docker("exec", name, *command)
        if res.returncode != 0:
            return None
        return res.stdout

    def prune(self, what: str, until: Optional[str] = None) -> bool:
        """Prune one object type (image, builder, network) without prompting."""
        args = [what, "prune", "-f"]
        if until:
            args += ["--filter", f"until={until}"]
        return self._docker(*args, timeout=120.0).returncode == 0


#------------
# kubernetes
#------------
def create_api_client(context: Optional[str] = None) -> client.ApiClient:
    configuration = client.Configuration()
    if os.getenv("KUBERNETES_SERVICE_HOST"):
        # Running inside the cluster
        config.load_incluster_config(client_configuration=configuration)
        logger.debug("Loaded in-cluster Kubernetes configuration")
    else:
        # Running outside the cluster, using kubeconfig
        config.load_kube_config(context=context, client_configuration=configuration)
        logger.debug(f"Loaded kubeconfig with context: {context}")
    return client.ApiClient(configuration=configuration)


class KubernetesRuntime(ContainerRuntime):
    """
    Treats tracked names as Deployments in one namespace. A deployment counts
    as running when it has at least one available replica and all desired
    replicas are available.
    """
    name = "kubernetes"

    def __init__(
        self,
        namespace: str = "default",
        context: Optional[str] = None,
        api_client: Optional[client.ApiClient] = None
    ) -> None:
        self.namespace = namespace
        self.context = context
        self._api_client = api_client
        self._apps: Optional[client.AppsV1Api] = None

    @property
    def apps(self) -> client.AppsV1Api:
        if self._apps is None:
            if self._api_client is None:
                try:
                    self._api_client = create_api_client(self.context)
                except config.ConfigException as e:
                    raise PrerequisiteError(f"Cannot load Kubernetes configuration: {e}") from e
            self._apps = client.AppsV1Api(self._api_client)
        return self._apps

    def ping(self) -> bool:
        try:
            self.apps.list_namespaced_deployment(self.namespace, limit=1)
        except (ApiException, PrerequisiteError) as e:
            logger.debug(f"Kubernetes API unreachable: {e}")
            return False
        return True

    @staticmethod
    def _is_available(deployment) -> bool:
        available_replicas = deployment.status.available_replicas or 0
        desired_replicas = deployment.spec.replicas or 0
        return available_replicas >= 1 and available_replicas == desired_replicas

    def list_running(self) -> List[str]:
        try:
            deployments = self.apps.list_namespaced_deployment(self.namespace)
        except ApiException as e:
            raise RuntimeCommandError(f"Cannot list deployments in {self.namespace}: {e.reason}") from e
        return [d.metadata.name for d in deployments.items if self._is_available(d)]

    def is_running(self, name: str) -> bool:
        try:
            deployment = self.apps.read_namespaced_deployment(name, self.namespace)
        except ApiException as e:
            logger.debug(f"Deployment {self.namespace}/{name} unreadable: {e.reason}")
            return False
        return self._is_available(deployment)

    def restart(self, name: str) -> bool:
        # same patch `kubectl rollout restart` applies
        now = datetime.datetime.now(datetime.timezone.utc).isoformat()
        body = {
            "spec": {
                "template": {
                    "metadata": {
                        "annotations": {"kubectl.kubernetes.io/restartedAt": now}
                    }
                }
            }
        }
        try:
            self.apps.patch_namespaced_deployment(name, self.namespace, body)
        except ApiException as e:
            logger.warning(f"Rollout restart of {self.namespace}/{name} failed: {e.reason}")
            return False
        return True


RUNTIME_MAP = {
    "docker": DockerRuntime,
    "kubernetes": KubernetesRuntime,
}

def create_runtime(
    kind: str,
    namespace: str = "default",
    context: Optional[str] = None
) -> ContainerRuntime:
    if kind not in RUNTIME_MAP:
        raise PrerequisiteError(f"Unsupported runtime '{kind}'. Choose from {list(RUNTIME_MAP.keys())}")
    if kind == "docker":
        if not has_command("docker"):
            raise PrerequisiteError("docker CLI not found on PATH")
        return DockerRuntime()
    return KubernetesRuntime(namespace=namespace, context=context)
