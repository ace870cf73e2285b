"""Domain-specific errors for blekeeper."""


class BlekeeperError(Exception):
    """Base error for blekeeper."""


class InvalidIdentifierError(BlekeeperError, ValueError):
    """Raised when a value cannot be parsed as a device identifier."""


class AdapterNotReady(BlekeeperError):
    """Raised when a radio operation is attempted while the adapter is not powered on."""


class UnknownDevice(BlekeeperError):
    """Raised when an identifier is not present in the device registry."""


class AdapterError(BlekeeperError):
    """Raised when the radio adapter cannot be started or driven."""


class ConfigError(BlekeeperError):
    """Base configuration error."""


class ConfigLoadError(ConfigError):
    """Raised when the configuration file cannot be read."""


class ConfigValidationError(ConfigError):
    """Raised when the configuration does not conform to schema or semantics."""


class StoreError(BlekeeperError):
    """Base durable storage error."""


class StoreLoadError(StoreError):
    """Raised when the durable store cannot be read or parsed."""


class StoreWriteError(StoreError):
    """Raised when the durable store cannot be written."""
