"""
activations.py
~~~~~~~~~~~~~~

The closed set of neuron activation functions.

Each member of :class:`Activation` carries the integer code written to
saved network files. :func:`get_activation` resolves a selector once to
a pair of vectorised functions so the hot loops never branch on it.
"""

import enum
from typing import NamedTuple, Union

import numpy as np

from neuralnet.errors import UnsupportedActivation
from neuralnet.linalg import ArrayFunction


class Activation(enum.IntEnum):
    """Activation selector; values are the persisted codes."""

    SIGMOID = 0
    TANH = 1
    SOFTSIGN = 2
    SOFTPLUS = 3
    RELU = 4
    LEAKY_RELU = 5


LEAKY_SLOPE = 0.01


class ActivationFunction(NamedTuple):
    """An activation and its derivative with respect to the pre-activation."""

    kind: Activation
    function: ArrayFunction
    derivative: ArrayFunction

    @property
    def name(self) -> str:
        return self.kind.name.lower()


def _sigmoid(x: np.ndarray) -> np.ndarray:
    with np.errstate(over='ignore'):
        return 1.0 / (1.0 + np.exp(-x))


def _sigmoid_derivative(x: np.ndarray) -> np.ndarray:
    # e^-x / (1 + e^-x)^2, written so large |x| stays finite
    s = _sigmoid(x)
    return s * (1.0 - s)


def _tanh(x: np.ndarray) -> np.ndarray:
    return np.tanh(x)


def _tanh_derivative(x: np.ndarray) -> np.ndarray:
    t = np.tanh(x)
    return 1.0 - t * t


def _softsign(x: np.ndarray) -> np.ndarray:
    return x / (1.0 + np.abs(x))


def _softsign_derivative(x: np.ndarray) -> np.ndarray:
    a = np.abs(x)
    return (1.0 + a - x * np.sign(x)) / ((1.0 + a) * (1.0 + a))


def _softplus(x: np.ndarray) -> np.ndarray:
    # ln(1 + e^x)
    return np.logaddexp(0.0, x)


def _relu(x: np.ndarray) -> np.ndarray:
    return np.where(x > 0, x, 0.0)


def _relu_derivative(x: np.ndarray) -> np.ndarray:
    return np.where(x > 0, 1.0, 0.0)


def _leaky_relu(x: np.ndarray) -> np.ndarray:
    return np.where(x > 0, x, LEAKY_SLOPE * x)


def _leaky_relu_derivative(x: np.ndarray) -> np.ndarray:
    return np.where(x > 0, 1.0, LEAKY_SLOPE)


_FUNCTIONS = {
    Activation.SIGMOID: ActivationFunction(
        Activation.SIGMOID, _sigmoid, _sigmoid_derivative),
    Activation.TANH: ActivationFunction(
        Activation.TANH, _tanh, _tanh_derivative),
    Activation.SOFTSIGN: ActivationFunction(
        Activation.SOFTSIGN, _softsign, _softsign_derivative),
    # d/dx ln(1 + e^x) = e^x / (1 + e^x), the sigmoid
    Activation.SOFTPLUS: ActivationFunction(
        Activation.SOFTPLUS, _softplus, _sigmoid),
    Activation.RELU: ActivationFunction(
        Activation.RELU, _relu, _relu_derivative),
    Activation.LEAKY_RELU: ActivationFunction(
        Activation.LEAKY_RELU, _leaky_relu, _leaky_relu_derivative),
}

_ALIASES = {
    'hyperbolic_tangent': Activation.TANH,
    'leaky': Activation.LEAKY_RELU,
    'lrel': Activation.LEAKY_RELU,
}


ActivationSelector = Union[Activation, ActivationFunction, int, str]


def get_activation(selector: ActivationSelector) -> ActivationFunction:
    """
    Resolve an activation selector.

    Args:
        selector: Activation member, persisted integer code, or name
            such as ``'tanh'`` or ``'leaky_relu'`` (case-insensitive)

    Returns:
        ActivationFunction: The function/derivative pair

    Raises:
        UnsupportedActivation: If the selector names no known activation
    """
    if isinstance(selector, ActivationFunction):
        return selector
    if isinstance(selector, bool):
        raise UnsupportedActivation(f"Unsupported activation: {selector!r}")
    if isinstance(selector, str):
        key = selector.strip().lower().replace('-', '_').replace(' ', '_')
        if key in _ALIASES:
            return _FUNCTIONS[_ALIASES[key]]
        try:
            return _FUNCTIONS[Activation[key.upper()]]
        except KeyError:
            raise UnsupportedActivation(f"Unsupported activation: {selector!r}")
    if isinstance(selector, (int, np.integer)):
        try:
            return _FUNCTIONS[Activation(int(selector))]
        except ValueError:
            raise UnsupportedActivation(
                f"Unsupported activation code: {int(selector)}"
            )
    raise UnsupportedActivation(f"Unsupported activation: {selector!r}")


def available_activations():
    """Names of all supported activations, in code order."""
    return [kind.name.lower() for kind in Activation]
