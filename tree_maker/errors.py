class TreeMakerError(Exception):
    """Base class for all tree-maker failures."""


class ConfigError(TreeMakerError, ValueError):
    """Invalid, missing or out-of-range configuration value."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class UnknownTreeType(ConfigError):
    def __init__(self, value):
        super().__init__("type", f"unknown tree type {value!r}")
        self.value = value


class UnknownBillboard(ConfigError):
    def __init__(self, value):
        super().__init__("leaves.billboard", f"unknown billboard mode {value!r}")
        self.value = value


class GenerationError(TreeMakerError, RuntimeError):
    """Internal invariant violated while building the skeleton or its geometry."""


class ExportError(TreeMakerError):
    """The exporter failed to write the mesh."""
