"""
test_serialization.py
~~~~~~~~~~~~~~~~~~~~~

Unit tests for the binary weight format and file-based weight storage.
"""

import pytest
import os
import sys

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ffnet.exceptions import DimensionMismatch
from ffnet.network import create_network
from ffnet.serialization import (
    HIDDEN_WEIGHTS_FILE,
    OUTPUT_WEIGHTS_FILE,
    decode_matrix,
    encode_matrix,
    load_weights,
    save_weights,
)


@pytest.fixture
def trained_network():
    net = create_network(3, 4, 2, 0.3, seed=21)
    for _ in range(10):
        net.train([0.1, 0.5, 0.9], [0.99, 0.01])
    return net


@pytest.mark.unit
class TestMatrixEncoding:
    """Tests for encode_matrix / decode_matrix."""

    def test_header_layout(self):
        blob = encode_matrix(np.zeros((2, 3)))
        assert blob[:4] == b'FFNM'
        assert len(blob) == 4 + 4 + 8 + 8 + 2 * 3 * 8

    def test_bit_identical(self):
        m = np.random.default_rng(0).uniform(-1, 1, size=(5, 7))
        decoded = decode_matrix(encode_matrix(m))
        assert decoded.shape == (5, 7)
        assert decoded.tobytes() == m.tobytes()

    def test_row_major_payload(self):
        blob = encode_matrix(np.array([[1.0, 2.0], [3.0, 4.0]]))
        payload = np.frombuffer(blob[24:], dtype='<f8')
        assert payload.tolist() == [1.0, 2.0, 3.0, 4.0]

    def test_rejects_flat_array(self):
        with pytest.raises(ValueError):
            encode_matrix(np.zeros(3))

    def test_bad_magic(self):
        blob = b'XXXX' + encode_matrix(np.zeros((1, 1)))[4:]
        with pytest.raises(ValueError):
            decode_matrix(blob)

    def test_truncated_blob(self):
        blob = encode_matrix(np.zeros((2, 2)))
        with pytest.raises(ValueError):
            decode_matrix(blob[:-8])
        with pytest.raises(ValueError):
            decode_matrix(blob[:10])


@pytest.mark.unit
class TestWeightFiles:
    """Tests for save_weights / load_weights."""

    def test_save_writes_two_files(self, trained_network, tmp_path):
        save_weights(trained_network, str(tmp_path))
        assert (tmp_path / HIDDEN_WEIGHTS_FILE).exists()
        assert (tmp_path / OUTPUT_WEIGHTS_FILE).exists()

    def test_save_creates_directory(self, trained_network, tmp_path):
        target = tmp_path / 'nested' / 'weights'
        save_weights(trained_network, str(target))
        assert (target / HIDDEN_WEIGHTS_FILE).exists()

    def test_round_trip_is_bit_identical(self, trained_network, tmp_path):
        save_weights(trained_network, str(tmp_path))

        restored = create_network(3, 4, 2, 0.3, seed=99)
        load_weights(restored, str(tmp_path))

        assert restored.hidden_weights.tobytes() == trained_network.hidden_weights.tobytes()
        assert restored.output_weights.tobytes() == trained_network.output_weights.tobytes()

    def test_shape_mismatch_leaves_network_intact(self, trained_network, tmp_path):
        """Test that loading weights of another architecture fails cleanly."""
        save_weights(trained_network, str(tmp_path))

        other = create_network(3, 5, 2, 0.3, seed=1)
        hidden_before = other.hidden_weights
        output_before = other.output_weights

        with pytest.raises(DimensionMismatch):
            load_weights(other, str(tmp_path))

        assert np.array_equal(other.hidden_weights, hidden_before)
        assert np.array_equal(other.output_weights, output_before)

    def test_missing_files(self, tmp_path):
        net = create_network(3, 4, 2, 0.3, seed=1)
        with pytest.raises(FileNotFoundError):
            load_weights(net, str(tmp_path))
