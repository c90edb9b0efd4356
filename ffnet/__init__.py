"""
ffnet package
~~~~~~~~~~~~~

Three-layer feedforward neural network for MNIST digit recognition.
Contains the matrix helpers, the network with its training loop, CSV
data loading, weight persistence, and the API server.
"""

__version__ = "1.0.0"
