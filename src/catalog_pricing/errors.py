"""
Exception types shared across the engine, the store adapters and the jobs layer.
"""


class PricingError(Exception):
    """Base class for all catalog pricing errors."""


class ConfigurationError(PricingError):
    """Pricing parameters describe an impossible configuration (e.g. margin >= 100%)."""


class MalformedInputError(PricingError):
    """A numeric field holds a value that cannot be parsed or is out of range."""

    def __init__(self, field: str, value, reason: str = "not a number"):
        self.field = field
        self.value = value
        super().__init__(f"{field}: invalid numeric value '{value}' ({reason})")


class JobAlreadyRunningError(PricingError):
    """A reprice job is already pending or running."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Reprice job already running: {job_id}")


class StoreError(PricingError):
    """The external table store could not be read or written."""
