"""
serialization.py
~~~~~~~~~~~~~~~~

Raw binary encoding of dense weight matrices.

Layout (little-endian):
    4 bytes   magic b'FFNM'
    uint32    format version
    int64     rows
    int64     cols
    float64 * rows * cols, row-major
"""

import os
import struct
import logging

import numpy as np

from ffnet.network import Network

# Configure module logger
logger = logging.getLogger(__name__)

MAGIC = b'FFNM'
VERSION = 1
_HEADER = struct.Struct('<4sIqq')

HIDDEN_WEIGHTS_FILE = 'hweights.model'
OUTPUT_WEIGHTS_FILE = 'oweights.model'


def encode_matrix(m: np.ndarray) -> bytes:
    """Serialise a 2-D matrix to bytes."""
    arr = np.asarray(m, dtype='<f8')
    if arr.ndim != 2:
        raise ValueError(f"Only 2-D matrices can be encoded, got {arr.shape}")
    rows, cols = arr.shape
    return _HEADER.pack(MAGIC, VERSION, rows, cols) + arr.tobytes(order='C')


def decode_matrix(data: bytes) -> np.ndarray:
    """
    Rebuild a matrix from encode_matrix output.

    Raises:
        ValueError: If the header is invalid or the payload is truncated
    """
    if len(data) < _HEADER.size:
        raise ValueError("Matrix blob is shorter than its header")

    magic, version, rows, cols = _HEADER.unpack_from(data)
    if magic != MAGIC:
        raise ValueError(f"Bad matrix magic {magic!r}")
    if version != VERSION:
        raise ValueError(f"Unsupported matrix format version {version}")
    if rows < 0 or cols < 0:
        raise ValueError(f"Invalid matrix shape ({rows}, {cols})")

    expected = _HEADER.size + rows * cols * 8
    if len(data) != expected:
        raise ValueError(
            f"Matrix blob has {len(data)} bytes, expected {expected}"
        )

    values = np.frombuffer(data, dtype='<f8', offset=_HEADER.size)
    return values.reshape(rows, cols).astype(float)


def save_weights(network: Network, model_dir: str = 'data') -> None:
    """
    Write the hidden and output weights to two files in `model_dir`.

    Raises:
        OSError: If a file can't be written
    """
    if model_dir and not os.path.exists(model_dir):
        os.makedirs(model_dir)

    for filename, weights in (
        (HIDDEN_WEIGHTS_FILE, network.hidden_weights),
        (OUTPUT_WEIGHTS_FILE, network.output_weights),
    ):
        path = os.path.join(model_dir, filename)
        with open(path, 'wb') as f:
            f.write(encode_matrix(weights))
        logger.debug(f"Wrote {weights.shape} weights to {path}")

    logger.info(f"Saved weights for network {network.sizes} to {model_dir}")


def load_weights(network: Network, model_dir: str = 'data') -> None:
    """
    Overwrite a network's weights with the matrices saved in `model_dir`.

    Raises:
        FileNotFoundError: If either weights file is missing
        ValueError: If a file isn't a valid matrix blob
        DimensionMismatch: If a stored shape differs from the network's
    """
    matrices = []
    for filename in (HIDDEN_WEIGHTS_FILE, OUTPUT_WEIGHTS_FILE):
        path = os.path.join(model_dir, filename)
        with open(path, 'rb') as f:
            matrices.append(decode_matrix(f.read()))

    network.restore_weights(*matrices)
    logger.info(f"Loaded weights for network {network.sizes} from {model_dir}")
