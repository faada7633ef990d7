"""Application-level exception types for reprise."""

from __future__ import annotations


class RepriseError(Exception):
    """Base exception for reprise."""


class ConfigurationError(RepriseError):
    """Base exception for configuration and startup validation errors."""


class ModelNotConfiguredError(ConfigurationError):
    """Raised when model configuration is missing."""


class InvalidModelFormatError(ConfigurationError):
    """Raised when model format is not provider:model."""


class DefinitionError(RepriseError):
    """Raised when a tool, agent, or other definition is declared with invalid arguments."""


class PromptError(RepriseError):
    """Raised when a prompt is driven in a way its lifecycle does not allow."""


class PluginError(RepriseError):
    """Raised when a plugin fails to load or contributes a conflicting method."""

    def __init__(self, message: str, plugin_name: str | None = None) -> None:
        super().__init__(message)
        self.plugin_name = plugin_name
