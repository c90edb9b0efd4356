"""
exceptions.py
~~~~~~~~~~~~~

Error types raised by the matrix library and the network.
"""


class NetworkError(Exception):
    """Base class for errors raised by ffnet."""


class DimensionMismatch(NetworkError, ValueError):
    """Operand shapes are incompatible for the requested operation."""


class InvalidConfiguration(NetworkError, ValueError):
    """A network was constructed with a non-positive size or learning rate."""
