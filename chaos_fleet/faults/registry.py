from typing import Callable, Dict, List, Optional, Type

from .fault_base import FaultModule, ModuleContext
from .modules.cloudflare import CloudflareTunnel
from .modules.disk_space import DiskSpace
from .modules.dns import Dns
from .modules.docker_socket import DockerSocket
from .modules.nvme_health import NvmeHealth
from .modules.postgres import Postgres
from ..utils.exceptions import DuplicateModuleError, UnknownModuleError
from ..utils.log import get_logger


logger = get_logger(__name__)


class ModuleOperations:
    """
    Resolved operation handles of one module. An operation the module does
    not implement is None. Every handle converts an exception raised by the
    module into a logged failure (False).
    """

    def __init__(self, module: FaultModule) -> None:
        self.module = module
        self.name = module.name
        self.read_only = module.read_only
        self.blinds_control_plane = module.blinds_control_plane
        self.describe: Optional[Callable[[], str]] = self._wrap_describe()
        self.check: Optional[Callable[[], bool]] = self._wrap("check")
        self.break_: Optional[Callable[..., bool]] = self._wrap("break_")
        self.heal: Optional[Callable[[], bool]] = self._wrap("heal")
        self.restore: Optional[Callable[[], bool]] = self._wrap("restore")

    def _wrap(self, operation: str) -> Optional[Callable[..., bool]]:
        if not type(self.module).implements(operation):
            return None
        fn = getattr(self.module, operation)

        def guarded(*args, **kwargs) -> bool:
            try:
                return bool(fn(*args, **kwargs))
            except Exception as e:
                logger.error(f"{self.name}: {operation.rstrip('_')} raised {type(e).__name__}: {e}")
                return False
        return guarded

    def _wrap_describe(self) -> Optional[Callable[[], str]]:
        if not type(self.module).implements("describe"):
            return None

        def guarded() -> str:
            try:
                return self.module.describe()
            except Exception as e:
                logger.error(f"{self.name}: describe raised {type(e).__name__}: {e}")
                return "(no description)"
        return guarded


class ModuleRegistry:
    """Ordered, append-only set of fault modules."""

    def __init__(self) -> None:
        self._modules: Dict[str, FaultModule] = {}
        self._order: List[str] = []

    def register(self, module: FaultModule) -> None:
        if module.name in self._modules:
            raise DuplicateModuleError(module.name)
        self._modules[module.name] = module
        self._order.append(module.name)

    @property
    def names(self) -> List[str]:
        return list(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def is_registered(self, name: str) -> bool:
        return name in self._modules

    def get(self, name: str) -> FaultModule:
        if name not in self._modules:
            raise UnknownModuleError(name, self._order)
        return self._modules[name]

    def resolve(self, name: str) -> ModuleOperations:
        return ModuleOperations(self.get(name))

    def select(self, names: Optional[List[str]] = None) -> List[str]:
        """
        Validate a module subset. All names are checked before anything is
        returned, so an unknown name fails before any state is touched.
        None or an empty list selects every registered module.
        """
        if not names:
            return self.names
        selected: List[str] = []
        for name in names:
            if name not in self._modules:
                raise UnknownModuleError(name, self._order)
            if name not in selected:
                selected.append(name)
        return selected


# registration order
FACTORY_MAP: Dict[str, Type[FaultModule]] = {
    CloudflareTunnel.name: CloudflareTunnel,
    DiskSpace.name: DiskSpace,
    Dns.name: Dns,
    DockerSocket.name: DockerSocket,
    NvmeHealth.name: NvmeHealth,
    Postgres.name: Postgres,
}


def build_registry(ctx: ModuleContext) -> ModuleRegistry:
    registry = ModuleRegistry()
    for module_cls in FACTORY_MAP.values():
        registry.register(module_cls(ctx))
    return registry
