"""Root exception type shared by every haproxy-configurator error hierarchy."""

from __future__ import annotations


class HAProxyConfiguratorError(Exception):
    """Base exception for all haproxy-configurator errors."""


class ConfigError(HAProxyConfiguratorError):
    """Raised when the configuration file is missing, unreadable or invalid."""
