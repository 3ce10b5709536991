"""
Exceptions raised inside Site Suitability
"""


class SiteSuitabilityError(Exception):
    """Base class for package errors"""


class FeatureFetchError(SiteSuitabilityError, RuntimeError):
    """Upstream feature service failed after all retries"""


class ConfigurationError(SiteSuitabilityError, ValueError):
    """Configuration values are missing or invalid"""
