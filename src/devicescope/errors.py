"""Exception types for devicescope."""


class DeviceScopeError(Exception):
    """Base class for all devicescope errors."""


class ProviderError(DeviceScopeError):
    """An attribute provider could not produce its attributes."""


class ProviderUnavailable(ProviderError):
    """The platform service behind a provider is not supported or missing."""


class ProviderPermissionDenied(ProviderError):
    """The user or the platform refused access to a provider's data."""


class ProviderTimeout(ProviderError):
    """A provider did not answer within the configured timeout."""


class DuplicateAttributeKeyError(DeviceScopeError, ValueError):
    """Two providers declare the same attribute key."""

    def __init__(self, provider: str, keys: set[str]) -> None:
        self.provider = provider
        self.keys = keys
        super().__init__(
            f"provider {provider!r} declares keys already owned by another provider: "
            f"{', '.join(sorted(keys))}"
        )


class ConfigError(DeviceScopeError, ValueError):
    """Invalid or unreadable configuration."""
