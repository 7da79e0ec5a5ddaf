# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT


class FMError(Exception):
    """Base class for all errors raised by relfm."""


class ConfigurationError(FMError, ValueError):
    """Invalid or inconsistent run configuration."""


class DataError(FMError, ValueError):
    """Unreadable or malformed input data."""


class DimensionMismatchError(FMError):
    """Shapes of the model, the data and the hyperparameters disagree."""
