class ChaosFleetError(Exception):
    """Base class for every error raised by chaos-fleet."""


class ConfigError(ChaosFleetError):
    """Invalid or unreadable configuration. Fatal at startup."""


class PrerequisiteError(ChaosFleetError):
    """A required tool or control plane is unavailable. Fatal at startup."""


class UnknownModuleError(ChaosFleetError):
    def __init__(self, name: str, available: list) -> None:
        self.name = name
        self.available = list(available)
        super().__init__(
            f"Unknown module: '{name}'. Available modules: {', '.join(self.available) or '(none)'}"
        )


class DuplicateModuleError(ChaosFleetError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Module '{name}' is already registered")


class StateStorageError(ChaosFleetError):
    """The run-scoped state directory could not be written."""


class RuntimeCommandError(ChaosFleetError):
    """A control-plane command failed or could not be launched."""


class CampaignInterrupted(BaseException):
    """Raised after the interruption cleanup has run.

    Derives from BaseException so that module operations wrapped in
    ``except Exception`` cannot swallow it.
    """
