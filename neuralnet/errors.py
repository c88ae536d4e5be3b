"""
errors.py
~~~~~~~~~

Exceptions raised by the neural network engine.
"""


class NeuralNetworkError(Exception):
    """Base class for every error raised by this package."""


class DimensionMismatch(NeuralNetworkError, ValueError):
    """Operand shapes or vector dimensions are incompatible."""


class InvalidConfiguration(NeuralNetworkError, ValueError):
    """Layer sizes, hyperparameters or settings are not usable."""


class UnsupportedActivation(NeuralNetworkError, ValueError):
    """Activation selector is outside the supported set."""


class NetworkFormatError(NeuralNetworkError, IOError):
    """A serialized network is truncated or malformed."""
