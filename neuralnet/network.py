"""
network.py
~~~~~~~~~~

A fully-connected feedforward neural network trained by mini-batch
stochastic gradient descent with squared-error loss and optional L1/L2
regularization.

Layers are numbered from 0 (the input layer). Weight matrix ``i`` maps
layer ``i - 1`` to layer ``i`` and has shape ``(sizes[i], sizes[i-1])``;
the input layer has no incoming matrix, so weights are addressed with
layer numbers starting at 1.

The network owns all layer and weight data. Accessors return copies and
setters validate shapes before replacing anything.
"""

import logging
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from neuralnet.activations import (
    Activation,
    ActivationFunction,
    ActivationSelector,
    get_activation,
)
from neuralnet.errors import DimensionMismatch, InvalidConfiguration
from neuralnet.linalg import Matrix, Vector

# Configure module logger
logger = logging.getLogger(__name__)


VectorLike = Union[Vector, Sequence[float], np.ndarray]


def as_vector(values: VectorLike) -> Vector:
    """Return ``values`` as a Vector (always a fresh copy)."""
    return Vector(values)


class Example(NamedTuple):
    """A supervised training pair."""

    input: Vector
    target: Vector

    @classmethod
    def of(cls, input: VectorLike, target: VectorLike) -> 'Example':
        """Build an example from any vector-like values."""
        return cls(as_vector(input), as_vector(target))


class Layer:
    """Per-layer neuron state: pre-activations, activations and biases."""

    def __init__(self, count: int):
        self.inputs = Vector.zeros(count)
        self.outputs = Vector.zeros(count)
        self.biases = Vector.zeros(count)

    @property
    def count(self) -> int:
        return self.inputs.dimension


class Network:
    """
    Feedforward network with mutable layer state.

    Example:
        >>> rng = np.random.default_rng(0)
        >>> net = Network([2, 3, 1], activation='tanh', learning_rate=0.5)
        >>> net.initialize_weights(rng)
        >>> net.initialize_biases(rng)
        >>> net.feedforward([0.0, 1.0]).dimension
        1
    """

    def __init__(
        self,
        sizes: Optional[Sequence[int]] = None,
        activation: ActivationSelector = Activation.TANH,
        mini_batch_size: int = 1,
        learning_rate: float = 1.0,
        l1: float = 0.0,
        l2: float = 0.0
    ):
        """
        Initialize the network.

        Args:
            sizes: Neurons per layer, input layer first. When omitted the
                network stays unconfigured until :meth:`configure`.
            activation: Activation selector (member, code or name)
            mini_batch_size: Examples per gradient step
            learning_rate: Step size η
            l1: L1 regularization coefficient λ1
            l2: L2 regularization coefficient λ2
        """
        self._layers: List[Layer] = []
        self._weights: List[Optional[Matrix]] = []
        self._activation: ActivationFunction = get_activation(activation)
        self.mini_batch_size = mini_batch_size
        self.learning_rate = float(learning_rate)
        self.l1 = float(l1)
        self.l2 = float(l2)
        if sizes is not None:
            self.configure(sizes)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def configure(self, sizes: Sequence[int]) -> None:
        """
        Allocate zeroed layers and weight matrices.

        Any previous structure is discarded.

        Args:
            sizes: Neurons per layer, at least two positive integers

        Raises:
            InvalidConfiguration: If sizes is missing, too short or holds
                non-positive values
        """
        if sizes is None:
            raise InvalidConfiguration("Layer sizes must not be None")
        sizes = list(sizes)
        if len(sizes) < 2:
            raise InvalidConfiguration(
                f"At least 2 layers are required, got {len(sizes)}"
            )
        for size in sizes:
            if isinstance(size, bool) or not isinstance(size, (int, np.integer)):
                raise InvalidConfiguration(f"Layer size must be an integer: {size!r}")
            if size < 1:
                raise InvalidConfiguration(f"Layer size must be positive: {size}")

        self._layers = [Layer(int(size)) for size in sizes]
        self._weights = [None] + [
            Matrix.zeros(int(sizes[i]), int(sizes[i - 1]))
            for i in range(1, len(sizes))
        ]
        logger.debug(f"Configured network with layer sizes {self.sizes}")

    @property
    def sizes(self) -> List[int]:
        return [layer.count for layer in self._layers]

    @property
    def num_layers(self) -> int:
        return len(self._layers)

    @property
    def activation(self) -> ActivationFunction:
        return self._activation

    @activation.setter
    def activation(self, selector: ActivationSelector) -> None:
        self._activation = get_activation(selector)

    @property
    def mini_batch_size(self) -> int:
        return self._mini_batch_size

    @mini_batch_size.setter
    def mini_batch_size(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
            raise InvalidConfiguration(
                f"mini_batch_size must be a positive integer, got {value!r}"
            )
        self._mini_batch_size = int(value)

    def _require_configured(self) -> None:
        if not self._layers:
            raise InvalidConfiguration("Network has no layers; call configure() first")

    def _check_layer_index(self, index: int, allow_input: bool = True) -> None:
        self._require_configured()
        lowest = 0 if allow_input else 1
        if not lowest <= index < len(self._layers):
            if index == 0 and not allow_input:
                raise IndexError("The input layer has no incoming weight matrix")
            raise IndexError(
                f"Layer index {index} out of range for {len(self._layers)} layers"
            )

    def weight_matrix(self, index: int) -> Matrix:
        """Copy of the weight matrix feeding layer ``index`` (1-based)."""
        self._check_layer_index(index, allow_input=False)
        return Matrix(self._weights[index])

    def set_weight_matrix(self, index: int, weights: Union[Matrix, np.ndarray]) -> None:
        """
        Replace the weight matrix feeding layer ``index``.

        Raises:
            IndexError: If index is 0 or out of range
            DimensionMismatch: If the shape differs from the current one
        """
        self._check_layer_index(index, allow_input=False)
        weights = Matrix(weights)
        expected = self._weights[index].shape
        if weights.shape != expected:
            raise DimensionMismatch(
                f"Weight matrix {index} must have shape {expected}, got {weights.shape}"
            )
        self._weights[index] = weights

    def biases(self, index: int) -> Vector:
        """Copy of the biases of layer ``index``."""
        self._check_layer_index(index)
        return Vector(self._layers[index].biases)

    def set_biases(self, index: int, biases: VectorLike) -> None:
        """
        Replace the biases of layer ``index``.

        Raises:
            IndexError: If index is out of range
            DimensionMismatch: If the dimension differs from the layer size
        """
        self._check_layer_index(index)
        biases = as_vector(biases)
        count = self._layers[index].count
        if biases.dimension != count:
            raise DimensionMismatch(
                f"Layer {index} has {count} neurons, got {biases.dimension} biases"
            )
        self._layers[index].biases = biases

    def layer_inputs(self, index: int) -> Vector:
        """Pre-activation values of layer ``index`` from the last forward pass."""
        self._check_layer_index(index)
        return Vector(self._layers[index].inputs)

    def layer_outputs(self, index: int) -> Vector:
        """Activations of layer ``index`` from the last forward pass."""
        self._check_layer_index(index)
        return Vector(self._layers[index].outputs)

    def num_parameters(self) -> int:
        """Number of trainable weights and non-input biases."""
        self._require_configured()
        weights = sum(w.rows * w.columns for w in self._weights[1:])
        return weights + sum(self.sizes[1:])

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize_weights(self, rng: np.random.Generator) -> None:
        """
        Draw every weight from N(0, 1/fan_in).

        fan_in is the size of the layer feeding the matrix, which keeps
        the activation variance roughly constant across layers.
        """
        self._require_configured()
        for i in range(1, len(self._layers)):
            fan_in = self._layers[i - 1].count
            shape = self._weights[i].shape
            self._weights[i] = Matrix(
                rng.normal(0.0, np.sqrt(1.0 / fan_in), size=shape)
            )

    def initialize_biases(self, rng: np.random.Generator) -> None:
        """Draw every non-input bias from N(0, 1)."""
        self._require_configured()
        for layer in self._layers[1:]:
            layer.biases = Vector(rng.normal(0.0, 1.0, size=layer.count))

    # ------------------------------------------------------------------
    # Inference and backpropagation
    # ------------------------------------------------------------------

    def feedforward(self, input: VectorLike) -> Vector:
        """
        Propagate ``input`` through the network.

        The input layer is passed through the activation function like
        every other layer. All layer inputs/outputs are left populated
        for :meth:`backprop`.

        Args:
            input: Vector with one element per input neuron

        Returns:
            Vector: Activations of the output layer

        Raises:
            DimensionMismatch: If the input dimension is wrong
        """
        self._require_configured()
        input = as_vector(input)
        first = self._layers[0]
        if input.dimension != first.count:
            raise DimensionMismatch(
                f"Input has dimension {input.dimension}, "
                f"network expects {first.count}"
            )

        function = self._activation.function
        first.inputs = input
        first.outputs = input.map(function)
        for i in range(1, len(self._layers)):
            layer = self._layers[i]
            layer.inputs = self._weights[i] @ self._layers[i - 1].outputs + layer.biases
            layer.outputs = layer.inputs.map(function)

        return Vector(self._layers[-1].outputs)

    def backprop(self, target: VectorLike) -> List[Vector]:
        """
        Compute the error of every layer for the last forward pass.

        The output error is the gradient of ½‖output − target‖²; earlier
        errors follow from the chain rule. :meth:`feedforward` must have
        been called for the matching input.

        Args:
            target: Expected output vector

        Returns:
            list: One error Vector per layer, input layer first

        Raises:
            DimensionMismatch: If the target dimension is wrong
        """
        self._require_configured()
        target = as_vector(target)
        last = self._layers[-1]
        if target.dimension != last.count:
            raise DimensionMismatch(
                f"Target has dimension {target.dimension}, "
                f"network outputs {last.count}"
            )

        derivative = self._activation.derivative
        errors: List[Optional[Vector]] = [None] * len(self._layers)
        errors[-1] = last.outputs - target
        for i in range(len(self._layers) - 2, -1, -1):
            errors[i] = (self._weights[i + 1].transpose() @ errors[i + 1]).hadamard(
                self._layers[i].inputs.map(derivative)
            )
        return errors

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def update_mini_batch(self, mini_batch: Sequence[Example]) -> None:
        """
        Apply one regularized gradient step for a mini-batch.

        Errors are summed over the batch (not averaged) and every step
        is scaled by the configured mini-batch size B, also for a
        shorter final batch:

            W ← (1 − η·λ2/B)·W − η/B·Σ errorᵢ·outputᵢ₋₁ᵀ − η·λ1/B·sign(W)
            b ← b − η/B·Σ error

        Biases of every layer are updated, including the unused input
        layer biases, which the saved format keeps.

        Raises:
            DimensionMismatch: If any example has a wrong dimension; no
                weight or bias has been changed at that point
        """
        self._require_configured()
        if not mini_batch:
            return

        error_sums = [Vector.zeros(layer.count) for layer in self._layers]
        gradient_sums: List[Optional[Matrix]] = [None] + [
            Matrix.zeros(*w.shape) for w in self._weights[1:]
        ]
        for example in mini_batch:
            self.feedforward(example.input)
            errors = self.backprop(example.target)
            for i, error in enumerate(errors):
                error_sums[i] = error_sums[i] + error
                if i > 0:
                    gradient_sums[i] = gradient_sums[i] + error.outer(
                        self._layers[i - 1].outputs
                    )

        batch = self.mini_batch_size
        step = self.learning_rate / batch
        decay = 1.0 - self.learning_rate * self.l2 / batch
        l1_step = self.learning_rate * self.l1 / batch
        for i in range(1, len(self._layers)):
            w = self._weights[i]
            self._weights[i] = w * decay - gradient_sums[i] * step - w.map(np.sign) * l1_step
        for layer, error_sum in zip(self._layers, error_sums):
            layer.biases = layer.biases - error_sum * step

    def run_epoch(self, training_data: Sequence[Example], rng: np.random.Generator) -> int:
        """
        Train for one pass over ``training_data``.

        The examples are put into a uniformly random order and split into
        consecutive mini-batches; the last batch may be shorter.

        Args:
            training_data: Supervised examples
            rng: Random generator used for the shuffle

        Returns:
            int: Number of gradient steps taken
        """
        self._require_configured()
        order = rng.permutation(len(training_data))
        shuffled = [training_data[k] for k in order]
        steps = 0
        for start in range(0, len(shuffled), self.mini_batch_size):
            self.update_mini_batch(shuffled[start:start + self.mini_batch_size])
            steps += 1
        return steps

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _evaluate(self, example: Example) -> Tuple[Vector, Vector]:
        output = self.feedforward(example.input)
        target = as_vector(example.target)
        if target.dimension != output.dimension:
            raise DimensionMismatch(
                f"Target has dimension {target.dimension}, "
                f"network outputs {output.dimension}"
            )
        return output, target

    def correct_count(self, examples: Iterable[Example]) -> int:
        """Number of examples whose largest output matches the target class."""
        correct = 0
        for example in examples:
            output, target = self._evaluate(example)
            if output.argmax() == target.argmax():
                correct += 1
        return correct

    def square_cost(self, examples: Iterable[Example]) -> float:
        """Sum over examples of ½‖output − target‖²."""
        cost = 0.0
        for example in examples:
            output, target = self._evaluate(example)
            cost += (output - target).squared_norm() / 2.0
        return cost
