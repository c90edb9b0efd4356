"""
test_training.py
~~~~~~~~~~~~~~~~

Tests for the epoch loop and scoring helpers.
"""

import pytest
import os
import sys

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ffnet.mnist_loader import one_hot
from ffnet.network import create_network
from ffnet.training import fit, evaluate, mean_squared_error


@pytest.fixture
def two_class_data():
    """Two well separated clusters with one-hot targets."""
    rng = np.random.default_rng(0)
    centres = {
        0: np.array([[0.8], [0.8], [0.2], [0.2]]),
        1: np.array([[0.2], [0.2], [0.8], [0.8]]),
    }
    training_data = []
    test_data = []
    for i in range(40):
        label = i % 2
        noise = rng.normal(0.0, 0.05, size=(4, 1))
        x = np.clip(centres[label] + noise, 0.01, 1.0)
        training_data.append((x, one_hot(label, 2)))
        test_data.append((x, label))
    return training_data, test_data


@pytest.mark.unit
class TestEvaluate:
    """Tests for evaluate and mean_squared_error."""

    def test_evaluate_counts_argmax_matches(self):
        net = create_network(3, 4, 2, 0.1, seed=1)
        x = np.array([0.2, 0.4, 0.6])
        predicted = int(np.argmax(net.predict(x)))

        assert evaluate(net, [(x, predicted)]) == 1
        assert evaluate(net, [(x, 1 - predicted)]) == 0

    def test_mean_squared_error_empty(self):
        net = create_network(3, 4, 2, 0.1, seed=1)
        assert mean_squared_error(net, []) == 0.0

    def test_mean_squared_error_value(self):
        net = create_network(3, 4, 2, 0.1, seed=1)
        x = np.array([0.2, 0.4, 0.6])
        y = np.array([0.99, 0.01])
        expected = np.mean((y.reshape(-1, 1) - net.predict(x)) ** 2)
        assert mean_squared_error(net, [(x, y)]) == pytest.approx(expected)


@pytest.mark.unit
class TestFit:
    """Tests for the training loop."""

    def test_fit_reports_every_epoch(self, two_class_data):
        training_data, test_data = two_class_data
        net = create_network(4, 3, 2, 0.3, seed=2)
        reports = []

        history = fit(
            net, training_data, 3, test_data=test_data,
            callback=reports.append, rng=np.random.default_rng(0)
        )

        assert history == reports
        assert [r['epoch'] for r in history] == [1, 2, 3]
        for report in history:
            assert report['total_epochs'] == 3
            assert report['total'] == len(test_data)
            assert 0 <= report['correct'] <= len(test_data)
            assert report['accuracy'] == report['correct'] / len(test_data)
            assert report['elapsed_time'] >= 0
            assert report['mean_squared_error'] > 0

    def test_fit_without_test_data(self, two_class_data):
        training_data, _ = two_class_data
        net = create_network(4, 3, 2, 0.3, seed=2)

        history = fit(net, training_data, 1)

        assert history[0]['accuracy'] is None
        assert history[0]['correct'] is None

    def test_fit_calls_yield_func_per_sample(self, two_class_data):
        training_data, _ = two_class_data
        net = create_network(4, 3, 2, 0.3, seed=2)
        calls = []

        fit(net, training_data, 2, yield_func=lambda: calls.append(1))

        assert len(calls) == 2 * len(training_data)

    def test_fit_learns_separable_clusters(self, two_class_data):
        """Test that a few epochs classify two distant clusters."""
        training_data, test_data = two_class_data
        net = create_network(4, 6, 2, 0.5, seed=3)

        history = fit(
            net, training_data, 50, test_data=test_data,
            rng=np.random.default_rng(1)
        )

        assert history[-1]['mean_squared_error'] < history[0]['mean_squared_error']
        assert history[-1]['accuracy'] >= 0.9

    def test_fit_without_shuffle_is_deterministic(self, two_class_data):
        training_data, _ = two_class_data
        a = create_network(4, 3, 2, 0.3, seed=4)
        b = create_network(4, 3, 2, 0.3, seed=4)

        fit(a, training_data, 2, shuffle=False)
        fit(b, training_data, 2, shuffle=False)

        assert np.array_equal(a.hidden_weights, b.hidden_weights)
        assert np.array_equal(a.output_weights, b.output_weights)

    @pytest.mark.parametrize('epochs', [0, -1, 1.5])
    def test_fit_rejects_bad_epochs(self, two_class_data, epochs):
        training_data, _ = two_class_data
        net = create_network(4, 3, 2, 0.3, seed=2)
        with pytest.raises(ValueError):
            fit(net, training_data, epochs)
