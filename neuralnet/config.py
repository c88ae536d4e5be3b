"""
config.py
~~~~~~~~~

Environment-driven settings and logging setup.

Variables:
    LOG_LEVEL                   logging level name (default INFO)
    NEURALNET_ENV               'production' quietens third-party logs
    NEURALNET_ACTIVATION        activation name (default tanh)
    NEURALNET_BATCH_SIZE        mini-batch size (default 1)
    NEURALNET_LEARNING_RATE     learning rate (default 1.0)
    NEURALNET_L1                L1 coefficient (default 0.0)
    NEURALNET_L2                L2 coefficient (default 0.0)
    NEURALNET_EPOCHS            training epochs (default 120)
    NEURALNET_CHECKPOINT_EVERY  epochs between checkpoints (default 10)
    NEURALNET_MODEL_DIR         directory for saved networks (default models)
"""

import logging
import os
from typing import Callable, Mapping, NamedTuple, Optional, TypeVar

from neuralnet.activations import get_activation
from neuralnet.errors import InvalidConfiguration, UnsupportedActivation

T = TypeVar('T')


# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: only warnings from third-party libraries, INFO for ours
    - Otherwise: the level given by LOG_LEVEL everywhere
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('NEURALNET_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if is_production:
        for logger_name in ['matplotlib', 'PIL']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('neuralnet').setLevel(logging.INFO)


# ============================================================================
# TRAINING SETTINGS
# ============================================================================

class TrainingSettings(NamedTuple):
    """Hyperparameters and training-loop options."""

    activation: str = 'tanh'
    mini_batch_size: int = 1
    learning_rate: float = 1.0
    l1: float = 0.0
    l2: float = 0.0
    epochs: int = 120
    checkpoint_every: int = 10
    model_dir: str = 'models'


def _parse(environ: Mapping[str, str], name: str, convert: Callable[[str], T],
           default: T) -> T:
    raw = environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return convert(raw.strip())
    except ValueError:
        raise InvalidConfiguration(f"{name} has an invalid value: {raw!r}")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> TrainingSettings:
    """
    Read training settings from environment variables.

    Args:
        environ: Mapping to read instead of ``os.environ``

    Returns:
        TrainingSettings: Parsed settings, defaults for unset variables

    Raises:
        InvalidConfiguration: If a value cannot be parsed or is out of range
    """
    if environ is None:
        environ = os.environ
    defaults = TrainingSettings()

    activation = _parse(environ, 'NEURALNET_ACTIVATION', str, defaults.activation)
    try:
        activation = get_activation(activation).name
    except UnsupportedActivation as e:
        raise InvalidConfiguration(f"NEURALNET_ACTIVATION: {e}")

    settings = TrainingSettings(
        activation=activation,
        mini_batch_size=_parse(environ, 'NEURALNET_BATCH_SIZE', int,
                               defaults.mini_batch_size),
        learning_rate=_parse(environ, 'NEURALNET_LEARNING_RATE', float,
                             defaults.learning_rate),
        l1=_parse(environ, 'NEURALNET_L1', float, defaults.l1),
        l2=_parse(environ, 'NEURALNET_L2', float, defaults.l2),
        epochs=_parse(environ, 'NEURALNET_EPOCHS', int, defaults.epochs),
        checkpoint_every=_parse(environ, 'NEURALNET_CHECKPOINT_EVERY', int,
                                defaults.checkpoint_every),
        model_dir=_parse(environ, 'NEURALNET_MODEL_DIR', str, defaults.model_dir),
    )

    if settings.mini_batch_size < 1:
        raise InvalidConfiguration("NEURALNET_BATCH_SIZE must be a positive integer")
    if settings.learning_rate <= 0:
        raise InvalidConfiguration("NEURALNET_LEARNING_RATE must be positive")
    if settings.l1 < 0 or settings.l2 < 0:
        raise InvalidConfiguration("NEURALNET_L1 and NEURALNET_L2 must be non-negative")
    if settings.epochs < 1:
        raise InvalidConfiguration("NEURALNET_EPOCHS must be a positive integer")
    if settings.checkpoint_every < 1:
        raise InvalidConfiguration("NEURALNET_CHECKPOINT_EVERY must be a positive integer")

    return settings
