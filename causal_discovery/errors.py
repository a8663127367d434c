# causal_discovery/errors.py
"""Exception types raised by the structure-learning engine."""


class StructureLearningError(Exception):
    """Base class for all engine errors"""


class ConfigurationError(StructureLearningError, ValueError):
    """Malformed constraint rules, unknown variables or an unusable algorithm setup.

    Fatal to the invocation that raised it; never silently downgraded.
    """


class DegenerateDataError(StructureLearningError):
    """Data that cannot support the requested computation (e.g. a categorical
    variable collapsed to a single level in a bootstrap resample)."""
