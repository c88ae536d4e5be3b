"""
test_model_persistence.py
~~~~~~~~~~~~~~~~~~~~~~~~~~

Unit tests for the binary network format and the SQLite model store.
"""

import io
import os
import sqlite3
import struct

import numpy as np
import pytest

from neuralnet.activations import Activation
from neuralnet.errors import NetworkFormatError, UnsupportedActivation
from neuralnet.linalg import Matrix
from neuralnet.model_persistence import (
    ModelDatabase,
    dump,
    dumps,
    load,
    load_network_file,
    loads,
    save_network_file,
)
from neuralnet.network import Example, Network


@pytest.fixture
def temp_db_dir(tmp_path):
    """Create a temporary directory for database storage."""
    db_dir = tmp_path / "test_models"
    db_dir.mkdir()
    return str(db_dir)


@pytest.fixture
def db(temp_db_dir):
    return ModelDatabase(db_path=os.path.join(temp_db_dir, "networks.db"))


@pytest.fixture
def simple_network():
    """Create a simple initialized 3-layer network for testing."""
    rng = np.random.default_rng(0)
    net = Network([3, 4, 2], activation='sigmoid')
    net.initialize_weights(rng)
    net.initialize_biases(rng)
    return net


@pytest.fixture
def trained_network(simple_network):
    """Create a simple network with some training applied."""
    rng = np.random.default_rng(1)
    training_data = []
    for i in range(10):
        target = np.zeros(2)
        target[i % 2] = 1.0
        training_data.append(Example.of(rng.normal(size=3), target))

    simple_network.mini_batch_size = 5
    simple_network.learning_rate = 0.1
    simple_network.run_epoch(training_data, rng)
    return simple_network


def assert_same_network(a, b):
    assert a.sizes == b.sizes
    assert a.activation.kind is b.activation.kind
    for i in range(a.num_layers):
        np.testing.assert_array_equal(a.biases(i).to_numpy(), b.biases(i).to_numpy())
    for i in range(1, a.num_layers):
        np.testing.assert_array_equal(
            a.weight_matrix(i).to_numpy(), b.weight_matrix(i).to_numpy()
        )


@pytest.mark.unit
class TestBinaryFormat:
    """Test the saved network layout."""

    def test_exact_byte_layout(self):
        """Test header, biases and weights of a [2, 1] network byte by byte."""
        net = Network([2, 1], activation=Activation.TANH)
        net.set_biases(0, [0.25, -0.5])
        net.set_biases(1, [0.5])
        net.set_weight_matrix(1, Matrix([[1.0, 2.0]]))

        expected = (
            struct.pack('<iiii', 1, 2, 2, 1)
            + struct.pack('<ddd', 0.25, -0.5, 0.5)
            + struct.pack('<dd', 1.0, 2.0)
        )
        assert dumps(net) == expected

    def test_weights_are_row_major(self):
        net = Network([2, 2], activation='relu')
        net.set_weight_matrix(1, Matrix([[1.0, 2.0], [3.0, 4.0]]))
        data = dumps(net)
        weights = struct.unpack('<dddd', data[-32:])
        assert weights == (1.0, 2.0, 3.0, 4.0)
        assert struct.unpack('<i', data[:4])[0] == 4

    @pytest.mark.parametrize('kind', list(Activation))
    def test_round_trip(self, trained_network, kind):
        """Test that load(dump(net)) reproduces every parameter exactly."""
        trained_network.activation = kind
        buffer = io.BytesIO()
        dump(trained_network, buffer)
        buffer.seek(0)
        assert_same_network(trained_network, load(buffer))

    def test_round_trip_preserves_outputs(self, trained_network):
        loaded = loads(dumps(trained_network))
        x = [0.1, -0.4, 0.9]
        assert loaded.feedforward(x) == trained_network.feedforward(x)

    def test_loaded_network_has_default_hyperparameters(self, simple_network):
        simple_network.learning_rate = 0.01
        simple_network.mini_batch_size = 8
        loaded = loads(dumps(simple_network))
        assert loaded.learning_rate == 1.0
        assert loaded.mini_batch_size == 1

    @pytest.mark.parametrize('cut', [0, 3, 4, 10, 20, 60, -1])
    def test_truncated_stream_raises(self, simple_network, cut):
        """Test that every truncation point is reported as an IOError."""
        data = dumps(simple_network)
        with pytest.raises(IOError):
            loads(data[:cut])
        with pytest.raises(NetworkFormatError):
            loads(data[:cut])

    def test_unknown_activation_code(self, simple_network):
        data = bytearray(dumps(simple_network))
        data[:4] = struct.pack('<i', 9)
        with pytest.raises(UnsupportedActivation):
            loads(bytes(data))

    @pytest.mark.parametrize('header', [
        struct.pack('<ii', 1, 1) + struct.pack('<i', 3),
        struct.pack('<ii', 1, -4),
        struct.pack('<iiii', 1, 2, 3, 0),
        struct.pack('<iiii', 1, 2, -3, 2),
    ])
    def test_malformed_header(self, header):
        with pytest.raises(NetworkFormatError):
            loads(header + b'\x00' * 64)

    def test_oversized_header_with_short_payload(self):
        """Test that huge claimed layers fail on the missing bytes, not on allocation."""
        header = struct.pack('<iiii', 1, 2, 2_000_000_000, 2_000_000_000)
        with pytest.raises(NetworkFormatError):
            loads(header + b'\x00' * 64)

    def test_oversized_header_in_file(self, tmp_path):
        path = tmp_path / 'huge.dat'
        path.write_bytes(struct.pack('<iiiii', 0, 3, 50_000, 50_000, 10))
        with pytest.raises(IOError):
            load_network_file(str(path))

    def test_trailing_bytes_ignored(self, simple_network):
        loaded = loads(dumps(simple_network) + b'extra')
        assert_same_network(simple_network, loaded)

    def test_corrupt_values_load_silently(self, simple_network):
        """Test that a complete stream with garbage values is accepted."""
        data = bytearray(dumps(simple_network))
        data[-8:] = struct.pack('<d', 1e300)
        loaded = loads(bytes(data))
        assert loaded.weight_matrix(2)[1, 3] == 1e300


@pytest.mark.unit
class TestNetworkFiles:
    """Test saving to and loading from files."""

    def test_save_and_load_file(self, trained_network, tmp_path):
        path = str(tmp_path / "network.dat")
        save_network_file(trained_network, path)
        assert os.path.getsize(path) == len(dumps(trained_network))
        assert_same_network(trained_network, load_network_file(path))

    def test_save_overwrites(self, simple_network, tmp_path):
        path = str(tmp_path / "network.dat")
        save_network_file(Network([50, 50, 50]), path)
        save_network_file(simple_network, path)
        assert_same_network(simple_network, load_network_file(path))

    def test_missing_file_raises_ioerror(self, tmp_path):
        with pytest.raises(IOError):
            load_network_file(str(tmp_path / "missing.dat"))

    def test_truncated_file_raises(self, simple_network, tmp_path):
        path = tmp_path / "short.dat"
        path.write_bytes(dumps(simple_network)[:-1])
        with pytest.raises(NetworkFormatError):
            load_network_file(str(path))


@pytest.mark.unit
class TestModelDatabase:
    """Test basic model store operations."""

    def test_creates_database_file(self, temp_db_dir):
        ModelDatabase(db_path=f"{temp_db_dir}/nested/networks.db")
        assert os.path.exists(f"{temp_db_dir}/nested/networks.db")

    def test_save_and_load(self, db, trained_network):
        db.save_network_to_db(trained_network, "net1", trained=True, accuracy=0.85)
        loaded = db.load_network_from_db("net1")
        assert isinstance(loaded, Network)
        assert_same_network(trained_network, loaded)

    def test_load_nonexistent_network(self, db):
        assert db.load_network_from_db("nonexistent") is None

    def test_metadata(self, db, simple_network):
        db.save_network_to_db(simple_network, "meta", trained=True, accuracy=0.75)
        metadata = db.get_network_metadata_from_db("meta")
        assert metadata['network_id'] == "meta"
        assert metadata['architecture'] == [3, 4, 2]
        assert metadata['activation'] == 'sigmoid'
        assert metadata['trained'] is True
        assert metadata['accuracy'] == 0.75
        assert 'created_at' in metadata
        assert 'updated_at' in metadata

    def test_metadata_missing(self, db):
        assert db.get_network_metadata_from_db("nope") is None

    def test_untrained_network(self, db, simple_network):
        db.save_network_to_db(simple_network, "fresh", trained=False)
        metadata = db.get_network_metadata_from_db("fresh")
        assert metadata['trained'] is False
        assert metadata['accuracy'] is None

    @pytest.mark.parametrize('accuracy', [-0.1, 1.5])
    def test_accuracy_out_of_range(self, db, simple_network, accuracy):
        with pytest.raises(ValueError):
            db.save_network_to_db(simple_network, "bad", accuracy=accuracy)
        assert db.list_networks_from_db() == []

    def test_empty_id_rejected(self, db, simple_network):
        with pytest.raises(ValueError):
            db.save_network_to_db(simple_network, "")

    def test_list_includes_shapes(self, db, simple_network):
        db.save_network_to_db(simple_network, "net1", accuracy=0.9)
        db.save_network_to_db(Network([2, 1]), "net2", trained=False)

        networks = db.list_networks_from_db()
        assert {net['network_id'] for net in networks} == {"net1", "net2"}
        net1 = next(net for net in networks if net['network_id'] == "net1")
        assert net1['weights_shape'] == [[4, 3], [2, 4]]
        assert net1['biases_shape'] == [[3], [4], [2]]

    def test_update_keeps_single_row(self, db, simple_network, trained_network):
        db.save_network_to_db(simple_network, "update", trained=False)
        db.save_network_to_db(trained_network, "update", trained=True, accuracy=0.88)

        metadata = db.get_network_metadata_from_db("update")
        assert metadata['trained'] is True
        assert metadata['accuracy'] == 0.88
        assert len(db.list_networks_from_db()) == 1

    def test_delete(self, db, simple_network):
        db.save_network_to_db(simple_network, "gone")
        assert db.delete_network_from_db("gone") is True
        assert db.load_network_from_db("gone") is None
        assert db.delete_network_from_db("gone") is False


def _age_network(db_path, network_id, modifier):
    conn = sqlite3.connect(db_path)
    conn.execute(
        "UPDATE networks SET created_at = datetime('now', ?) WHERE network_id = ?",
        (modifier, network_id)
    )
    conn.commit()
    conn.close()


@pytest.mark.unit
class TestDeleteOldNetworks:
    """Tests for age-based cleanup."""

    def test_mixed_ages(self, db, simple_network):
        for network_id in ["old_1", "old_2", "recent_1", "recent_2"]:
            db.save_network_to_db(simple_network, network_id)
        _age_network(db.db_path, "old_1", '-3 days')
        _age_network(db.db_path, "old_2", '-14 days')

        assert db.delete_old_networks_from_db(days=2) == 2
        assert db.load_network_from_db("old_1") is None
        assert db.load_network_from_db("old_2") is None
        assert db.load_network_from_db("recent_1") is not None
        assert db.load_network_from_db("recent_2") is not None

    def test_custom_threshold(self, db, simple_network):
        db.save_network_to_db(simple_network, "five_days")
        _age_network(db.db_path, "five_days", '-5 days')

        assert db.delete_old_networks_from_db(days=7) == 0
        assert db.delete_old_networks_from_db(days=3) == 1

    def test_zero_days(self, db, simple_network):
        db.save_network_to_db(simple_network, "hour_old")
        _age_network(db.db_path, "hour_old", '-1 hour')
        assert db.delete_old_networks_from_db(days=0) == 1

    def test_empty_db(self, db):
        assert db.delete_old_networks_from_db(days=2) == 0

    def test_negative_days(self, db):
        with pytest.raises(ValueError) as exc_info:
            db.delete_old_networks_from_db(days=-1)
        assert "non-negative" in str(exc_info.value)


@pytest.mark.integration
class TestPersistenceIntegration:
    """Integration tests for model persistence."""

    def test_save_load_train_cycle(self, db, simple_network):
        """Test complete cycle: save, load, train, save again."""
        db.save_network_to_db(simple_network, "cycle", trained=False)
        loaded = db.load_network_from_db("cycle")

        rng = np.random.default_rng(5)
        training_data = [
            Example.of(rng.normal(size=3), [1.0, 0.0] if i % 2 else [0.0, 1.0])
            for i in range(10)
        ]
        loaded.learning_rate = 0.1
        loaded.run_epoch(training_data, rng)
        accuracy = loaded.correct_count(training_data) / len(training_data)
        db.save_network_to_db(loaded, "cycle", trained=True, accuracy=accuracy)

        final = db.load_network_from_db("cycle")
        assert_same_network(loaded, final)
        assert db.get_network_metadata_from_db("cycle")['accuracy'] == accuracy

    def test_multiple_networks_coexist(self, db):
        architectures = {
            "glyph_network": [256, 170, 40],
            "simple_network": [3, 4, 2],
            "deep_network": [10, 20, 20, 10],
        }
        for network_id, sizes in architectures.items():
            db.save_network_to_db(Network(sizes), network_id)

        assert len(db.list_networks_from_db()) == len(architectures)
        for network_id, sizes in architectures.items():
            assert db.load_network_from_db(network_id).sizes == sizes
