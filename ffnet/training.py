"""
training.py
~~~~~~~~~~~

Epoch loop and scoring helpers built on Network.train / Network.predict.

Training is strictly per sample: every epoch walks the training data
once and calls Network.train for each (inputs, targets) pair.
"""

import time
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ffnet import matrix
from ffnet.network import Network

# Configure module logger
logger = logging.getLogger(__name__)

Sample = Tuple[np.ndarray, Any]


def evaluate(network: Network, test_data: Sequence[Sample]) -> int:
    """
    Count the samples the network classifies correctly.

    Args:
        network: Network to score
        test_data: (inputs, label) pairs with integer labels

    Returns:
        int: Number of samples where argmax of the output equals the label
    """
    correct = 0
    for x, label in test_data:
        if int(np.argmax(network.predict(x))) == int(label):
            correct += 1
    return correct


def mean_squared_error(network: Network, samples: Sequence[Sample]) -> float:
    """Mean over samples of the mean squared output error."""
    if not samples:
        return 0.0

    total = 0.0
    for x, y in samples:
        errors = matrix.subtract(matrix.column(y), network.predict(x))
        total += float(np.mean(matrix.multiply(errors, errors)))
    return total / len(samples)


def fit(
    network: Network,
    training_data: Sequence[Sample],
    epochs: int,
    test_data: Optional[Sequence[Sample]] = None,
    callback: Optional[Callable[[Dict[str, Any]], None]] = None,
    yield_func: Optional[Callable[[], None]] = None,
    shuffle: bool = True,
    rng: Optional[np.random.Generator] = None
) -> List[Dict[str, Any]]:
    """
    Train `network` for a number of epochs.

    Args:
        network: Network to train in place
        training_data: (inputs, one-hot targets) pairs
        epochs: Number of passes over the training data
        test_data: Optional (inputs, label) pairs scored after every epoch
        callback: Called with the epoch report after every epoch
        yield_func: Called after every sample so a cooperative scheduler
            can run other work during long epochs
        shuffle: Visit samples in a new random order each epoch
        rng: Random generator used for shuffling

    Returns:
        list: One report dict per epoch

    Raises:
        ValueError: If epochs is not a positive integer
    """
    if not isinstance(epochs, int) or epochs < 1:
        raise ValueError(f"epochs must be a positive integer, got {epochs!r}")

    if rng is None:
        rng = np.random.default_rng()

    order = np.arange(len(training_data))
    history = []
    start = time.time()

    for epoch in range(1, epochs + 1):
        if shuffle:
            rng.shuffle(order)

        # error of each sample as seen by train(), before its own update
        squared_error = 0.0
        for index in order:
            x, y = training_data[index]
            outputs = network.train(x, y)
            errors = matrix.subtract(matrix.column(y), outputs)
            squared_error += float(np.mean(matrix.multiply(errors, errors)))
            if yield_func is not None:
                yield_func()

        report: Dict[str, Any] = {
            'epoch': epoch,
            'total_epochs': epochs,
            'elapsed_time': time.time() - start,
            'mean_squared_error': squared_error / max(len(order), 1),
            'accuracy': None,
            'correct': None,
            'total': None
        }

        if test_data:
            correct = evaluate(network, test_data)
            report['correct'] = correct
            report['total'] = len(test_data)
            report['accuracy'] = correct / len(test_data)
            logger.info(
                f"Epoch {epoch}/{epochs}: {correct}/{len(test_data)} correct, "
                f"mse={report['mean_squared_error']:.5f}"
            )
        else:
            logger.info(
                f"Epoch {epoch}/{epochs} complete, "
                f"mse={report['mean_squared_error']:.5f}"
            )

        history.append(report)
        if callback is not None:
            callback(report)

    return history
