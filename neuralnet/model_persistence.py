"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

Binary network format and SQLite-based model storage.

File layout (little-endian)::

    int32    activation code
    int32    layer count
    int32    neurons per layer            (layer count values)
    float64  biases, layer by layer       (input layer included)
    float64  weights, matrix by matrix    (row-major, from layer 1)

There is no checksum: a complete but corrupted stream loads into a
network with garbage values.
"""

import io
import json
import logging
import os
import sqlite3
import struct
from contextlib import contextmanager
from typing import Any, BinaryIO, Dict, Generator, List, Optional

import numpy as np

from neuralnet.activations import get_activation
from neuralnet.errors import InvalidConfiguration, NetworkFormatError
from neuralnet.network import Network

# Configure module logger
logger = logging.getLogger(__name__)

_INT32 = struct.Struct('<i')
_FLOAT64 = np.dtype('<f8')

# Largest single read; a header may claim far more than the stream holds
_READ_CHUNK = 1 << 20


# ============================================================================
# BINARY FORMAT
# ============================================================================

def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(min(remaining, _READ_CHUNK))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    if remaining > 0:
        raise NetworkFormatError(
            f"Unexpected end of stream reading {what}: "
            f"needed {size} bytes, got {size - remaining}"
        )
    return b''.join(chunks)


def _read_int32(stream: BinaryIO, what: str) -> int:
    return _INT32.unpack(_read_exact(stream, _INT32.size, what))[0]


def dump(network: Network, stream: BinaryIO) -> None:
    """
    Write ``network`` to a binary stream.

    Args:
        network: Configured network
        stream: Writable binary file object
    """
    sizes = network.sizes
    chunks = [
        _INT32.pack(int(network.activation.kind)),
        _INT32.pack(len(sizes)),
    ]
    chunks.extend(_INT32.pack(size) for size in sizes)
    for i in range(len(sizes)):
        chunks.append(network.biases(i).to_numpy().astype(_FLOAT64).tobytes())
    for i in range(1, len(sizes)):
        chunks.append(
            network.weight_matrix(i).to_numpy().astype(_FLOAT64).tobytes(order='C')
        )
    stream.write(b''.join(chunks))


def dumps(network: Network) -> bytes:
    """Serialize ``network`` to bytes."""
    buffer = io.BytesIO()
    dump(network, buffer)
    return buffer.getvalue()


def load(stream: BinaryIO) -> Network:
    """
    Read a network from a binary stream.

    The activation and layer sizes come from the header; the network is
    configured from them and then biases and weights are filled in file
    order. Hyperparameters are not stored and keep their defaults.

    Args:
        stream: Readable binary file object positioned at the header

    Returns:
        Network: The reconstructed network

    Raises:
        NetworkFormatError: If the stream is truncated or the header
            cannot describe a network
        UnsupportedActivation: If the activation code is unknown
    """
    code = _read_int32(stream, 'activation code')
    activation = get_activation(code)

    count = _read_int32(stream, 'layer count')
    if count < 2:
        raise NetworkFormatError(f"Invalid layer count in stream: {count}")
    sizes = [_read_int32(stream, f'size of layer {i}') for i in range(count)]
    if any(size < 1 for size in sizes):
        raise NetworkFormatError(f"Invalid layer sizes in stream: {sizes}")

    # The whole payload is read before the network is allocated
    num_values = sum(sizes) + sum(sizes[i] * sizes[i - 1] for i in range(1, count))
    data = _read_exact(stream, num_values * _FLOAT64.itemsize, 'biases and weights')
    values = np.frombuffer(data, dtype=_FLOAT64).astype(np.float64)

    try:
        network = Network(sizes, activation=activation)
    except InvalidConfiguration as e:
        raise NetworkFormatError(f"Invalid layer sizes in stream: {e}")

    offset = 0
    for i, size in enumerate(sizes):
        network.set_biases(i, values[offset:offset + size])
        offset += size
    for i in range(1, count):
        shape = (sizes[i], sizes[i - 1])
        block = values[offset:offset + shape[0] * shape[1]]
        network.set_weight_matrix(i, block.reshape(shape))
        offset += block.size
    return network


def loads(data: bytes) -> Network:
    """Deserialize a network from bytes."""
    return load(io.BytesIO(data))


def save_network_file(network: Network, filename: str) -> None:
    """
    Save ``network`` to ``filename``, replacing any existing file.

    Raises:
        OSError: If the file cannot be written
    """
    with open(filename, 'wb') as f:
        dump(network, f)
    logger.info(f"Saved network {network.sizes} to {filename}")


def load_network_file(filename: str) -> Network:
    """
    Load a network saved with :func:`save_network_file`.

    Raises:
        OSError: If the file cannot be opened
        NetworkFormatError: If the content is truncated or malformed
    """
    try:
        with open(filename, 'rb') as f:
            network = load(f)
    except NetworkFormatError as e:
        logger.warning(f"Could not load network from {filename}: {e}")
        raise
    logger.info(f"Loaded network {network.sizes} from {filename}")
    return network


# ============================================================================
# MODEL DATABASE
# ============================================================================

class ModelDatabase:
    """
    SQLite store for serialized networks.

    Each row keeps the binary network blob next to queryable metadata:
    architecture, activation name, training status and accuracy.
    """

    def __init__(self, db_path: str = 'models/networks.db'):
        """
        Initialize the database, creating file and schema when missing.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Commits on success, rolls back on error and always closes.
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        with self._get_connection() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    activation TEXT NOT NULL,
                    network_data BLOB NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    accuracy REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    def save_network_to_db(
        self,
        network: Network,
        network_id: str,
        trained: bool = True,
        accuracy: Optional[float] = None
    ) -> None:
        """
        Insert or replace a network.

        The original creation time is kept when an id is saved again.

        Args:
            network: Configured network
            network_id: Unique identifier
            trained: Whether the network has been trained
            accuracy: Accuracy in [0.0, 1.0], if known

        Raises:
            ValueError: If network_id is empty or accuracy is out of range
        """
        if not network_id or not isinstance(network_id, str):
            raise ValueError("network_id must be a non-empty string")
        if accuracy is not None and not 0.0 <= accuracy <= 1.0:
            raise ValueError(
                f"Accuracy must be between 0.0 and 1.0, got {accuracy}"
            )

        blob = dumps(network)
        with self._get_connection() as conn:
            conn.execute('''
                INSERT INTO networks
                (network_id, architecture, activation, network_data,
                 trained, accuracy)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    activation = excluded.activation,
                    network_data = excluded.network_data,
                    trained = excluded.trained,
                    accuracy = excluded.accuracy,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                json.dumps(network.sizes),
                network.activation.name,
                blob,
                1 if trained else 0,
                accuracy
            ))

        logger.info(
            f"Saved network '{network_id}' with architecture "
            f"{network.sizes}, trained={trained}, accuracy={accuracy}"
        )

    def load_network_from_db(self, network_id: str) -> Optional[Network]:
        """
        Load a network.

        Returns:
            Network or None if the id is unknown

        Raises:
            NetworkFormatError: If the stored blob is malformed
        """
        with self._get_connection() as conn:
            row = conn.execute(
                'SELECT network_data FROM networks WHERE network_id = ?',
                (network_id,)
            ).fetchone()

        if row is None:
            logger.warning(f"Network '{network_id}' not found")
            return None

        network = loads(row['network_data'])
        logger.info(f"Loaded network '{network_id}'")
        return network

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            'network_id': row['network_id'],
            'architecture': json.loads(row['architecture']),
            'activation': row['activation'],
            'trained': bool(row['trained']),
            'accuracy': row['accuracy'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """
        List all networks with metadata, newest first.

        Each entry also carries the weight shapes implied by the
        architecture, one per non-input layer.
        """
        with self._get_connection() as conn:
            rows = conn.execute('''
                SELECT network_id, architecture, activation, trained,
                       accuracy, created_at, updated_at
                FROM networks
                ORDER BY created_at DESC, network_id
            ''').fetchall()

        networks = []
        for row in rows:
            metadata = self._row_to_metadata(row)
            sizes = metadata['architecture']
            metadata['weights_shape'] = [
                [sizes[i], sizes[i - 1]] for i in range(1, len(sizes))
            ]
            metadata['biases_shape'] = [[size] for size in sizes]
            networks.append(metadata)

        logger.debug(f"Listed {len(networks)} networks")
        return networks

    def get_network_metadata_from_db(self, network_id: str) -> Optional[Dict[str, Any]]:
        """Metadata of one network without deserializing it, or None."""
        with self._get_connection() as conn:
            row = conn.execute('''
                SELECT network_id, architecture, activation, trained,
                       accuracy, created_at, updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,)).fetchone()

        if row is None:
            logger.warning(f"Metadata for network '{network_id}' not found")
            return None
        return self._row_to_metadata(row)

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Delete a network.

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted network '{network_id}'")
        else:
            logger.warning(f"Could not delete network '{network_id}': not found")
        return deleted

    def delete_old_networks_from_db(self, days: float = 2) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Returns:
            int: Number of deleted networks

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.execute('''
                DELETE FROM networks
                WHERE julianday('now') - julianday(created_at) > ?
            ''', (days,))
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted
