"""Exception types raised across the airkorea package boundary."""


class ConfigurationError(ValueError):
    """Raised when a required setting (API key, station) is missing."""
