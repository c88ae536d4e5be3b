"""
training.py
~~~~~~~~~~~

Multi-epoch training loop with progress callbacks and checkpoints.
"""

import logging
import os
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from neuralnet.config import TrainingSettings
from neuralnet.errors import InvalidConfiguration
from neuralnet.model_persistence import save_network_file
from neuralnet.network import Example, Network

# Configure module logger
logger = logging.getLogger(__name__)

EpochCallback = Callable[[Dict[str, Any]], None]


def default_layer_sizes(input_dim: int, output_dim: int) -> List[int]:
    """
    Three-layer architecture with a hidden layer 2/3 the input size.

    Example:
        >>> default_layer_sizes(256, 40)
        [256, 170, 40]
    """
    return [input_dim, max(1, input_dim * 2 // 3), output_dim]


def build_network(
    sizes: Sequence[int],
    rng: np.random.Generator,
    settings: Optional[TrainingSettings] = None
) -> Network:
    """
    Create, configure and randomly initialize a network.

    Weights are drawn before biases, so a fixed seed gives the same
    network every time.

    Args:
        sizes: Neurons per layer
        rng: Random generator for the initial values
        settings: Hyperparameters; defaults when omitted

    Returns:
        Network: Ready to train
    """
    if settings is None:
        settings = TrainingSettings()
    network = Network(
        sizes,
        activation=settings.activation,
        mini_batch_size=settings.mini_batch_size,
        learning_rate=settings.learning_rate,
        l1=settings.l1,
        l2=settings.l2
    )
    network.initialize_weights(rng)
    network.initialize_biases(rng)
    logger.info(
        f"Built network {network.sizes} ({network.num_parameters()} parameters, "
        f"activation={network.activation.name})"
    )
    return network


def train(
    network: Network,
    training_data: Sequence[Example],
    epochs: int,
    rng: np.random.Generator,
    test_data: Optional[Sequence[Example]] = None,
    callback: Optional[EpochCallback] = None,
    checkpoint_dir: Optional[str] = None,
    checkpoint_every: int = 10
) -> List[Dict[str, Any]]:
    """
    Train ``network`` for a number of epochs.

    After every epoch the network is evaluated on ``test_data`` (or on
    the training data when none is given) and ``callback`` receives the
    progress dict. Every ``checkpoint_every`` epochs the square cost is
    logged and, when ``checkpoint_dir`` is set, the network is saved as
    ``network{epoch}.dat`` there.

    Args:
        network: Configured and initialized network
        training_data: Examples to learn from
        epochs: Number of passes over the training data
        rng: Random generator for shuffling
        test_data: Examples to evaluate on
        callback: Called with the progress dict after each epoch
        checkpoint_dir: Directory for checkpoint files
        checkpoint_every: Epochs between checkpoints

    Returns:
        list: Progress dicts, one per epoch, with keys ``epoch``,
        ``total_epochs``, ``correct``, ``total``, ``accuracy``, ``cost``
        and ``elapsed_time``

    Raises:
        InvalidConfiguration: If epochs or checkpoint_every is not positive
    """
    if epochs < 1:
        raise InvalidConfiguration(f"epochs must be a positive integer, got {epochs}")
    if checkpoint_every < 1:
        raise InvalidConfiguration(
            f"checkpoint_every must be a positive integer, got {checkpoint_every}"
        )
    if checkpoint_dir:
        os.makedirs(checkpoint_dir, exist_ok=True)

    evaluation_data = test_data if test_data is not None else training_data
    total = len(evaluation_data)
    history = []
    start_time = time.time()

    logger.info(
        f"Training {network.sizes} for {epochs} epoch(s) on "
        f"{len(training_data)} example(s), batch size {network.mini_batch_size}, "
        f"learning rate {network.learning_rate}"
    )

    for epoch in range(1, epochs + 1):
        network.run_epoch(training_data, rng)

        correct = network.correct_count(evaluation_data)
        progress = {
            'epoch': epoch,
            'total_epochs': epochs,
            'correct': correct,
            'total': total,
            'accuracy': correct / total if total else 0.0,
            'cost': network.square_cost(evaluation_data),
            'elapsed_time': time.time() - start_time
        }
        history.append(progress)
        logger.debug(f"Epoch {epoch}/{epochs} complete")

        if epoch % checkpoint_every == 0 or epoch == epochs:
            logger.info(
                f"Epoch {epoch}: square cost {progress['cost']:.6f}, "
                f"correct {correct}/{total}"
            )
        if checkpoint_dir and epoch % checkpoint_every == 0:
            save_network_file(
                network, os.path.join(checkpoint_dir, f'network{epoch}.dat')
            )

        if callback is not None:
            callback(progress)

    return history
