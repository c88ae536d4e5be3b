"""
features.py
~~~~~~~~~~~

Conversion between binary glyph images and network vectors.

Images are 2-D boolean arrays indexed ``[row, column]`` where True marks
a foreground pixel. Binarization, edge detection and thinning happen
before this module; it only samples fixed windows, builds targets and
ranks the network's class scores.
"""

import base64
import logging
from io import BytesIO
from typing import List, Optional

import numpy as np

# Use non-GUI backend for matplotlib
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from neuralnet.errors import DimensionMismatch
from neuralnet.linalg import Vector
from neuralnet.network import Example, Network, VectorLike, as_vector

# Configure module logger
logger = logging.getLogger(__name__)

WINDOW_WIDTH = 16
WINDOW_HEIGHT = 16

# (dx, dy): the pixel at (x, y) is taken from (x + dx, y + dy)
_SHIFTS = [(0, 0), (1, 0), (-1, 0), (0, 1), (0, -1)]


def _as_image(image) -> np.ndarray:
    array = np.asarray(image, dtype=bool)
    if array.ndim != 2:
        raise DimensionMismatch(f"Image must be two-dimensional, got shape {array.shape}")
    return array


def sample_window(
    image,
    x: int = 0,
    y: int = 0,
    width: int = WINDOW_WIDTH,
    height: int = WINDOW_HEIGHT
) -> Vector:
    """
    Sample a window of a binary image as a 0/1 vector.

    Element ``dx * height + dy`` holds the pixel at column ``x + dx`` and
    row ``y + dy``. Pixels outside the image count as background.

    Args:
        image: 2-D boolean array
        x: Left column of the window
        y: Top row of the window
        width: Window width in pixels
        height: Window height in pixels

    Returns:
        Vector: ``width * height`` values, each 0.0 or 1.0

    Raises:
        ValueError: If the window origin is negative
    """
    if x < 0 or y < 0:
        raise ValueError(f"Window origin must be non-negative, got ({x}, {y})")
    pixels = _as_image(image)
    window = np.zeros((height, width), dtype=np.float64)
    patch = pixels[y:y + height, x:x + width]
    window[:patch.shape[0], :patch.shape[1]] = patch
    return Vector(window.T.reshape(-1))


def one_hot(index: int, dimension: int) -> Vector:
    """Vector of ``dimension`` zeros with a 1 at ``index``."""
    if not 0 <= index < dimension:
        raise ValueError(f"Class index {index} out of range for {dimension} classes")
    target = np.zeros(dimension)
    target[index] = 1.0
    return Vector(target)


def _shift(pixels: np.ndarray, dx: int, dy: int) -> np.ndarray:
    rows, columns = pixels.shape
    shifted = np.zeros_like(pixels)
    src_rows = slice(max(dy, 0), rows + min(dy, 0))
    dst_rows = slice(max(-dy, 0), rows + min(-dy, 0))
    src_cols = slice(max(dx, 0), columns + min(dx, 0))
    dst_cols = slice(max(-dx, 0), columns + min(-dx, 0))
    shifted[dst_rows, dst_cols] = pixels[src_rows, src_cols]
    return shifted


def shifted_examples(
    image,
    class_index: int,
    num_classes: int,
    width: int = WINDOW_WIDTH,
    height: int = WINDOW_HEIGHT
) -> List[Example]:
    """
    Training examples for one glyph image and its one-pixel shifts.

    The image itself is followed by copies moved one pixel left, right,
    up and down. A shifted copy that pushes foreground pixels over the
    edge is skipped.

    Args:
        image: 2-D boolean glyph image
        class_index: Class of the glyph
        num_classes: Number of output classes

    Returns:
        list: Between one and five examples sharing the same target
    """
    pixels = _as_image(image)
    target = one_hot(class_index, num_classes)
    foreground = int(pixels.sum())

    examples = []
    for dx, dy in _SHIFTS:
        shifted = _shift(pixels, dx, dy)
        if int(shifted.sum()) != foreground:
            continue
        examples.append(Example(sample_window(shifted, 0, 0, width, height), Vector(target)))

    logger.debug(
        f"Class {class_index}: {len(examples)} example(s) from a "
        f"{pixels.shape[1]}x{pixels.shape[0]} image"
    )
    return examples


def rank_classes(network: Network, input: VectorLike) -> List[int]:
    """Class indices ordered from the highest to the lowest network output."""
    output = network.feedforward(input).to_numpy()
    return [int(i) for i in np.argsort(-output, kind='stable')]


def classify(network: Network, input: VectorLike) -> int:
    """Index of the highest network output."""
    return network.feedforward(input).argmax()


def render_window(
    values: VectorLike,
    width: int = WINDOW_WIDTH,
    height: int = WINDOW_HEIGHT,
    title: Optional[str] = None
) -> str:
    """
    Create a base64-encoded PNG image of a sampled window.

    Args:
        values: ``width * height`` values in :func:`sample_window` order
        width: Window width in pixels
        height: Window height in pixels
        title: Optional caption

    Returns:
        Base64-encoded PNG image string
    """
    vector = as_vector(values)
    if vector.dimension != width * height:
        raise DimensionMismatch(
            f"Window of {width}x{height} needs {width * height} values, "
            f"got {vector.dimension}"
        )
    picture = vector.to_numpy().reshape(width, height).T

    plt.figure(figsize=(3, 3))
    plt.imshow(picture, cmap='gray_r', vmin=0.0, vmax=1.0)
    if title:
        plt.title(title)
    plt.axis('off')

    # Save image to a bytes buffer instead of a file
    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64
