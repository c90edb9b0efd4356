"""
matrix.py
~~~~~~~~~

Pure matrix helpers over dense 2-D numpy arrays.

Every function returns a new array and leaves its operands untouched.
Operations over two matrices check shapes up front and raise
DimensionMismatch instead of relying on numpy broadcasting.
"""

from typing import Callable, Iterable

import numpy as np

from ffnet.exceptions import DimensionMismatch


def _as_matrix(m: np.ndarray, name: str = 'matrix') -> np.ndarray:
    """Return `m` as a float array, rejecting anything that isn't 2-D."""
    arr = np.asarray(m, dtype=float)
    if arr.ndim != 2:
        raise DimensionMismatch(
            f"{name} must be 2-dimensional, got shape {arr.shape}"
        )
    return arr


def _require_same_shape(m: np.ndarray, n: np.ndarray, op: str) -> None:
    if m.shape != n.shape:
        raise DimensionMismatch(
            f"{op}: shapes {m.shape} and {n.shape} differ"
        )


def apply(fn: Callable[[int, int, float], float], m: np.ndarray) -> np.ndarray:
    """
    Build a matrix of m's shape whose element (i, j) is fn(i, j, m[i, j]).

    Args:
        fn: Function of row index, column index and value
        m: Source matrix

    Returns:
        np.ndarray: New matrix of the same shape
    """
    m = _as_matrix(m)
    out = np.empty(m.shape, dtype=float)
    for (i, j), value in np.ndenumerate(m):
        out[i, j] = fn(i, j, value)
    return out


def dot(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Matrix product of `a` (r x k) and `b` (k x c).

    Raises:
        DimensionMismatch: If a's column count differs from b's row count
    """
    a = _as_matrix(a, 'left operand')
    b = _as_matrix(b, 'right operand')
    if a.shape[1] != b.shape[0]:
        raise DimensionMismatch(
            f"dot: cannot multiply {a.shape} by {b.shape}"
        )
    return np.dot(a, b)


def scale(s: float, m: np.ndarray) -> np.ndarray:
    """Multiply every element of `m` by the scalar `s`."""
    return _as_matrix(m) * s


def multiply(m: np.ndarray, n: np.ndarray) -> np.ndarray:
    """Elementwise (Hadamard) product of two equally shaped matrices."""
    m, n = _as_matrix(m), _as_matrix(n)
    _require_same_shape(m, n, 'multiply')
    return m * n


def add(m: np.ndarray, n: np.ndarray) -> np.ndarray:
    """Elementwise sum of two equally shaped matrices."""
    m, n = _as_matrix(m), _as_matrix(n)
    _require_same_shape(m, n, 'add')
    return m + n


def subtract(m: np.ndarray, n: np.ndarray) -> np.ndarray:
    """Elementwise difference `m - n` of two equally shaped matrices."""
    m, n = _as_matrix(m), _as_matrix(n)
    _require_same_shape(m, n, 'subtract')
    return m - n


def add_scalar(s: float, m: np.ndarray) -> np.ndarray:
    """Add `s` to every element by broadcasting it into a same-shape matrix."""
    m = _as_matrix(m)
    return add(m, np.full(m.shape, s, dtype=float))


def transpose(m: np.ndarray) -> np.ndarray:
    return _as_matrix(m).T.copy()


def ones_like(m: np.ndarray) -> np.ndarray:
    return np.ones(_as_matrix(m).shape, dtype=float)


def column(values: Iterable[float]) -> np.ndarray:
    """
    Build an n x 1 column vector from a flat sequence or array.

    Arrays that are already a single column are copied as-is.
    """
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 2 and arr.shape[1] == 1:
        return arr.copy()
    if arr.ndim != 1:
        raise DimensionMismatch(
            f"Expected a flat sequence or column vector, got shape {arr.shape}"
        )
    return arr.reshape(-1, 1)
