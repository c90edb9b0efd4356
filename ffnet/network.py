"""
network.py
~~~~~~~~~~

A three-layer feedforward neural network (input -> hidden -> output)
trained one sample at a time with backpropagation.

The network has no bias terms and uses the logistic sigmoid on both the
hidden and output layers. All arithmetic goes through ffnet.matrix.
"""

import logging
import numbers
import threading
from typing import List, Optional, Sequence, Union

import numpy as np

from ffnet import matrix
from ffnet.exceptions import DimensionMismatch, InvalidConfiguration

# Configure module logger
logger = logging.getLogger(__name__)

Vector = Union[np.ndarray, Sequence[float]]


def sigmoid(z):
    """The logistic function 1 / (1 + e^-z)."""
    return 1.0 / (1.0 + np.exp(-z))


def sigmoid_prime(activated: np.ndarray) -> np.ndarray:
    """
    Derivative of the sigmoid expressed through its output.

    `activated` must already be sigmoid(z); the result is
    activated * (1 - activated).
    """
    return matrix.multiply(
        activated,
        matrix.subtract(matrix.ones_like(activated), activated)
    )


def _activate(i: int, j: int, z: float) -> float:
    return sigmoid(z)


def _check_size(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidConfiguration(
            f"{name} must be a positive integer, got {value!r}"
        )
    if value <= 0:
        raise InvalidConfiguration(
            f"{name} must be a positive integer, got {value}"
        )
    return int(value)


class Network:
    """
    Three-layer feedforward network.

    Attributes:
        input_size: Number of input neurons
        hidden_size: Number of hidden neurons
        output_size: Number of output neurons
        learning_rate: Step size used by train()

    The weight matrices are owned by the network. The `hidden_weights`
    and `output_weights` properties hand out copies; only train() and
    restore_weights() change the stored values.
    """

    def __init__(
        self,
        input_size: int,
        hidden_size: int,
        output_size: int,
        learning_rate: float,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None
    ):
        """
        Create a network with weights drawn uniformly from
        [-1/sqrt(fan_in), 1/sqrt(fan_in)] for each layer.

        Args:
            input_size: Number of input neurons
            hidden_size: Number of hidden neurons
            output_size: Number of output neurons
            learning_rate: Positive step size
            rng: Random generator used for initialisation
            seed: Seed for a new generator when `rng` isn't given

        Raises:
            InvalidConfiguration: If a size or the learning rate isn't positive
        """
        self.input_size = _check_size('input_size', input_size)
        self.hidden_size = _check_size('hidden_size', hidden_size)
        self.output_size = _check_size('output_size', output_size)

        if (isinstance(learning_rate, bool)
                or not isinstance(learning_rate, numbers.Real)
                or not learning_rate > 0):
            raise InvalidConfiguration(
                f"learning_rate must be a positive number, got {learning_rate!r}"
            )
        self.learning_rate = float(learning_rate)

        if rng is None:
            rng = np.random.default_rng(seed)

        self._hidden_weights = self._random_weights(
            rng, self.hidden_size, self.input_size
        )
        self._output_weights = self._random_weights(
            rng, self.output_size, self.hidden_size
        )
        self._lock = threading.Lock()

        logger.debug(
            f"Initialised network {self.sizes} with learning rate "
            f"{self.learning_rate}"
        )

    @staticmethod
    def _random_weights(
        rng: np.random.Generator,
        rows: int,
        fan_in: int
    ) -> np.ndarray:
        bound = 1.0 / np.sqrt(fan_in)
        return rng.uniform(-bound, bound, size=(rows, fan_in))

    @property
    def sizes(self) -> List[int]:
        """Layer sizes as [input, hidden, output]."""
        return [self.input_size, self.hidden_size, self.output_size]

    @property
    def hidden_weights(self) -> np.ndarray:
        with self._lock:
            return self._hidden_weights.copy()

    @property
    def output_weights(self) -> np.ndarray:
        with self._lock:
            return self._output_weights.copy()

    def _vector(self, values: Vector, size: int, name: str) -> np.ndarray:
        vec = matrix.column(values)
        if vec.shape[0] != size:
            raise DimensionMismatch(
                f"{name} has {vec.shape[0]} elements, network expects {size}"
            )
        return vec

    @staticmethod
    def _forward(
        hidden_weights: np.ndarray,
        output_weights: np.ndarray,
        inputs: np.ndarray
    ):
        hidden_inputs = matrix.dot(hidden_weights, inputs)
        hidden_outputs = matrix.apply(_activate, hidden_inputs)
        final_inputs = matrix.dot(output_weights, hidden_outputs)
        final_outputs = matrix.apply(_activate, final_inputs)
        return hidden_outputs, final_outputs

    def predict(self, inputs: Vector) -> np.ndarray:
        """
        Forward propagation.

        Args:
            inputs: input_size values, flat or as a column vector

        Returns:
            np.ndarray: output_size x 1 column of activations in (0, 1)

        Raises:
            DimensionMismatch: If the input length is wrong
        """
        inputs = self._vector(inputs, self.input_size, 'inputs')
        # both matrices must come from the same train() commit
        with self._lock:
            hidden_weights = self._hidden_weights
            output_weights = self._output_weights
        _, final_outputs = self._forward(hidden_weights, output_weights, inputs)
        return final_outputs

    def train(self, inputs: Vector, targets: Vector) -> np.ndarray:
        """
        Run one forward pass and one backpropagation update for a single
        sample.

        Both weight matrices are recomputed from the weights as they were
        before the call and then committed together.

        Args:
            inputs: input_size values
            targets: output_size target values

        Returns:
            np.ndarray: The network output before the update

        Raises:
            DimensionMismatch: If inputs or targets have the wrong length.
                Weights are left unchanged.
        """
        inputs = self._vector(inputs, self.input_size, 'inputs')
        targets = self._vector(targets, self.output_size, 'targets')

        with self._lock:
            hidden_outputs, final_outputs = self._forward(
                self._hidden_weights, self._output_weights, inputs
            )

            output_errors = matrix.subtract(targets, final_outputs)
            hidden_errors = matrix.dot(
                matrix.transpose(self._output_weights), output_errors
            )

            output_weights = matrix.add(
                self._output_weights,
                matrix.scale(
                    self.learning_rate,
                    matrix.dot(
                        matrix.multiply(
                            output_errors, sigmoid_prime(final_outputs)
                        ),
                        matrix.transpose(hidden_outputs)
                    )
                )
            )
            hidden_weights = matrix.add(
                self._hidden_weights,
                matrix.scale(
                    self.learning_rate,
                    matrix.dot(
                        matrix.multiply(
                            hidden_errors, sigmoid_prime(hidden_outputs)
                        ),
                        matrix.transpose(inputs)
                    )
                )
            )

            self._output_weights = output_weights
            self._hidden_weights = hidden_weights

        return final_outputs

    def restore_weights(
        self,
        hidden_weights: np.ndarray,
        output_weights: np.ndarray
    ) -> None:
        """
        Replace both weight matrices, e.g. after loading them from disk.

        Raises:
            DimensionMismatch: If either shape differs from the network's.
                Nothing is replaced in that case.
        """
        hidden = np.array(hidden_weights, dtype=float)
        output = np.array(output_weights, dtype=float)

        expected_hidden = (self.hidden_size, self.input_size)
        expected_output = (self.output_size, self.hidden_size)
        if hidden.shape != expected_hidden:
            raise DimensionMismatch(
                f"hidden weights have shape {hidden.shape}, "
                f"expected {expected_hidden}"
            )
        if output.shape != expected_output:
            raise DimensionMismatch(
                f"output weights have shape {output.shape}, "
                f"expected {expected_output}"
            )

        with self._lock:
            self._hidden_weights = hidden
            self._output_weights = output

    def __repr__(self) -> str:
        return (
            f"Network(input_size={self.input_size}, "
            f"hidden_size={self.hidden_size}, "
            f"output_size={self.output_size}, "
            f"learning_rate={self.learning_rate})"
        )


def create_network(
    input_size: int,
    hidden_size: int,
    output_size: int,
    learning_rate: float,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None
) -> Network:
    """
    Create a network with randomly initialised weights.

    Example:
        >>> net = create_network(784, 200, 10, 0.1, seed=42)
        >>> net.predict(np.full(784, 0.5)).shape
        (10, 1)
    """
    return Network(
        input_size, hidden_size, output_size, learning_rate,
        rng=rng, seed=seed
    )
