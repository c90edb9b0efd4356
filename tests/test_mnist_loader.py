"""
test_mnist_loader.py
~~~~~~~~~~~~~~~~~~~~

Unit tests for CSV dataset loading.
"""

import pytest
import os
import sys

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ffnet.mnist_loader import (
    load_csv,
    load_data_wrapper,
    normalize_pixels,
    one_hot,
)


def write_csv(path, rows, header=None):
    lines = []
    if header:
        lines.append(header)
    lines.extend(','.join(str(v) for v in row) for row in rows)
    path.write_text('\n'.join(lines) + '\n')
    return str(path)


@pytest.fixture
def train_csv(tmp_path):
    rows = [
        [3, 0, 255, 128, 0],
        [7, 255, 255, 0, 0],
        [0, 10, 20, 30, 40],
        [9, 0, 0, 0, 0],
    ]
    return write_csv(tmp_path / 'train.csv', rows)


@pytest.fixture
def test_csv(tmp_path):
    rows = [[1, 0, 0, 255, 255], [2, 50, 50, 50, 50]]
    return write_csv(tmp_path / 'test.csv', rows, header='label,p0,p1,p2,p3')


@pytest.mark.unit
class TestEncoding:
    """Tests for pixel normalisation and one-hot targets."""

    def test_normalize_range(self):
        x = normalize_pixels([0, 255, 127.5])
        assert x.shape == (3, 1)
        assert x[0, 0] == pytest.approx(0.01)
        assert x[1, 0] == pytest.approx(1.0)
        assert np.all((x >= 0.01) & (x <= 1.0))

    def test_one_hot_marks_true_class(self):
        target = one_hot(3)
        assert target.shape == (10, 1)
        assert target[3, 0] == 0.99
        assert np.sum(target == 0.01) == 9

    def test_one_hot_custom_size(self):
        assert one_hot(1, output_size=2).ravel().tolist() == [0.01, 0.99]

    @pytest.mark.parametrize('label', [-1, 10])
    def test_one_hot_out_of_range(self, label):
        with pytest.raises(ValueError):
            one_hot(label)


@pytest.mark.unit
class TestLoadCsv:
    """Tests for load_csv."""

    def test_loads_rows(self, train_csv):
        samples = load_csv(train_csv)
        assert len(samples) == 4
        x, label = samples[1]
        assert label == 7
        assert x.shape == (4, 1)
        assert x[0, 0] == pytest.approx(1.0)
        assert x[3, 0] == pytest.approx(0.01)

    def test_detects_header(self, test_csv):
        samples = load_csv(test_csv)
        assert [label for _, label in samples] == [1, 2]

    def test_explicit_skip_header(self, tmp_path):
        path = write_csv(tmp_path / 'numeric_header.csv', [[0, 1, 2], [5, 3, 4]])
        samples = load_csv(path, skip_header=True)
        assert [label for _, label in samples] == [5]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_csv(str(tmp_path / 'missing.csv'))

    def test_ragged_rows(self, tmp_path):
        path = write_csv(tmp_path / 'ragged.csv', [[1, 0, 0], [2, 0]])
        with pytest.raises(ValueError) as exc_info:
            load_csv(path)
        assert ':2:' in str(exc_info.value)

    def test_non_numeric_pixel(self, tmp_path):
        path = write_csv(tmp_path / 'bad.csv', [[1, 0, 0], [2, 0, 'x']])
        with pytest.raises(ValueError):
            load_csv(path)

    @pytest.mark.parametrize('label', ['3.7', '3.0', 'seven'])
    def test_non_integer_label(self, tmp_path, label):
        """Test that a label is never truncated into a class index."""
        path = write_csv(tmp_path / 'labels.csv', [[1, 0, 0], [label, 0, 0]])
        with pytest.raises(ValueError) as exc_info:
            load_csv(path)
        assert ':2:' in str(exc_info.value)


@pytest.mark.unit
class TestLoadDataWrapper:
    """Tests for load_data_wrapper."""

    def test_training_targets_are_one_hot(self, train_csv, test_csv):
        training_data, validation_data, test_data = load_data_wrapper(
            train_csv, test_csv
        )

        assert len(training_data) == 4
        assert validation_data == []
        assert len(test_data) == 2

        x, y = training_data[0]
        assert x.shape == (4, 1)
        assert y.shape == (10, 1)
        assert int(np.argmax(y)) == 3
        assert isinstance(test_data[0][1], int)

    def test_validation_split(self, train_csv, test_csv):
        training_data, validation_data, _ = load_data_wrapper(
            train_csv, test_csv, validation_size=1
        )
        assert len(training_data) == 3
        assert [label for _, label in validation_data] == [9]

    def test_negative_validation_size(self, train_csv, test_csv):
        with pytest.raises(ValueError):
            load_data_wrapper(train_csv, test_csv, validation_size=-1)
