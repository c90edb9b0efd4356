"""
mnist_loader.py
~~~~~~~~~~~~~~~

Load MNIST-style CSV files into (inputs, target) pairs.

Each row is `label, p0, p1, ..., pn` with pixel values in 0-255.
Pixels are rescaled into [0.01, 1.0] so no input is exactly zero, and
labels are turned into one-hot targets of 0.01 with 0.99 at the label.
"""

import os
import csv
import logging
from typing import List, Optional, Tuple

import numpy as np

# Configure module logger
logger = logging.getLogger(__name__)

TARGET_LOW = 0.01
TARGET_HIGH = 0.99


def normalize_pixels(pixels) -> np.ndarray:
    """Map raw 0-255 pixel values into [0.01, 1.0] as a column vector."""
    arr = np.asarray(pixels, dtype=float)
    return (arr / 255.0 * 0.99 + 0.01).reshape(-1, 1)


def one_hot(label: int, output_size: int = 10) -> np.ndarray:
    """
    Target vector for a class label.

    Returns:
        np.ndarray: output_size x 1 column of 0.01 with 0.99 at `label`

    Raises:
        ValueError: If the label is outside [0, output_size)
    """
    if not 0 <= label < output_size:
        raise ValueError(
            f"Label {label} out of range for {output_size} outputs"
        )
    target = np.full((output_size, 1), TARGET_LOW)
    target[label] = TARGET_HIGH
    return target


def _is_number(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return False
    return True


def load_csv(
    path: str,
    skip_header: Optional[bool] = None
) -> List[Tuple[np.ndarray, int]]:
    """
    Read a CSV of labelled samples.

    Args:
        path: CSV file path
        skip_header: Skip the first row. When None, the first row is
            skipped only if its first field isn't numeric.

    Returns:
        list: (normalised input column, integer label) pairs

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If a row is malformed or rows differ in length
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Dataset not found: {path}")

    samples = []
    width = None

    with open(path, newline='') as f:
        reader = csv.reader(f)
        for line_no, row in enumerate(reader, start=1):
            if not row:
                continue

            if line_no == 1:
                header = (
                    skip_header if skip_header is not None
                    else not _is_number(row[0])
                )
                if header:
                    continue

            if width is None:
                width = len(row)
            elif len(row) != width:
                raise ValueError(
                    f"{path}:{line_no}: expected {width} fields, "
                    f"got {len(row)}"
                )

            try:
                label = int(row[0])
                pixels = [float(v) for v in row[1:]]
            except ValueError as e:
                raise ValueError(f"{path}:{line_no}: {e}") from e

            if not pixels:
                raise ValueError(f"{path}:{line_no}: row has no pixel values")

            samples.append((normalize_pixels(pixels), label))

    logger.info(f"Loaded {len(samples)} samples from {path}")
    return samples


def load_data_wrapper(
    train_path: str,
    test_path: str,
    validation_size: int = 0,
    output_size: int = 10
):
    """
    Load training and test CSVs in the shape the trainer expects.

    Args:
        train_path: Training CSV
        test_path: Test CSV
        validation_size: Number of trailing training rows held out for
            validation
        output_size: Number of classes for the one-hot targets

    Returns:
        tuple: (training_data, validation_data, test_data). Training pairs
        are (inputs, one-hot target); validation and test pairs are
        (inputs, label).
    """
    if validation_size < 0:
        raise ValueError("validation_size must be non-negative")

    train_samples = load_csv(train_path)
    test_data = load_csv(test_path)

    if validation_size:
        validation_data = train_samples[-validation_size:]
        train_samples = train_samples[:-validation_size]
    else:
        validation_data = []

    training_data = [
        (x, one_hot(label, output_size)) for x, label in train_samples
    ]

    return training_data, validation_data, test_data
