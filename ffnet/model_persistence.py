"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

SQLite-based persistence for trained networks.

Each row keeps the network's architecture and learning rate as plain
columns and its two weight matrices as binary blobs in the format
written by ffnet.serialization.
"""

import functools
import sqlite3
import json
import os
import logging
from typing import Any, Callable, Dict, Generator, List, Optional
from contextlib import contextmanager

from ffnet.exceptions import NetworkError
from ffnet.network import Network
from ffnet.serialization import encode_matrix, decode_matrix

# Configure module logger
logger = logging.getLogger(__name__)


# Everything but the weight blobs
_METADATA_COLUMNS = (
    'network_id, architecture, learning_rate, trained, accuracy, '
    'created_at, updated_at'
)


def _weight_shapes(architecture: List[int]) -> List[List[int]]:
    """Shapes of the hidden and output weight matrices for [in, hidden, out]."""
    return [
        [architecture[i + 1], architecture[i]]
        for i in range(len(architecture) - 1)
    ]


class ModelDatabase:
    """
    Manages the SQLite database of saved networks.

    The database stores:
    - Network metadata (architecture, learning rate, training status, accuracy)
    - Hidden and output weight matrices as binary blobs
    """

    def __init__(self, db_path: str = 'models/networks.db'):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    learning_rate REAL NOT NULL,
                    hidden_weights BLOB NOT NULL,
                    output_weights BLOB NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    accuracy REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_trained
                ON networks(trained)
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    def save_network_to_db(
        self,
        network: Network,
        network_id: str,
        trained: bool = True,
        accuracy: Optional[float] = None
    ) -> bool:
        """
        Save a network to the database, replacing any row with the same id.

        The original created_at is kept when a network is saved again.

        Args:
            network: Network to save
            network_id: Unique identifier for the network
            trained: Whether the network has been trained
            accuracy: Test accuracy (0.0 to 1.0)

        Returns:
            bool: True once the row is written

        Raises:
            ValueError: If accuracy is out of valid range
        """
        if accuracy is not None and not 0.0 <= accuracy <= 1.0:
            raise ValueError(
                f"Accuracy must be between 0.0 and 1.0, got {accuracy}"
            )

        hidden_blob = encode_matrix(network.hidden_weights)
        output_blob = encode_matrix(network.output_weights)
        architecture_json = json.dumps(network.sizes)

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO networks
                (network_id, architecture, learning_rate, hidden_weights,
                 output_weights, trained, accuracy, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    learning_rate = excluded.learning_rate,
                    hidden_weights = excluded.hidden_weights,
                    output_weights = excluded.output_weights,
                    trained = excluded.trained,
                    accuracy = excluded.accuracy,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                architecture_json,
                network.learning_rate,
                sqlite3.Binary(hidden_blob),
                sqlite3.Binary(output_blob),
                1 if trained else 0,
                accuracy
            ))

        logger.info(
            f"Saved network '{network_id}' with architecture "
            f"{network.sizes}, trained={trained}, accuracy={accuracy}"
        )
        return True

    def load_network_from_db(self, network_id: str) -> Optional[Network]:
        """
        Load a network from the database.

        Args:
            network_id: Unique identifier of the network

        Returns:
            Network or None if not found

        Raises:
            ValueError: If a stored weight blob is corrupt
            DimensionMismatch: If stored weights don't fit the architecture
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT architecture, learning_rate,
                       hidden_weights, output_weights
                FROM networks WHERE network_id = ?
            ''', (network_id,))
            row = cursor.fetchone()

            if row is None:
                logger.warning(f"Network '{network_id}' not found")
                return None

            input_size, hidden_size, output_size = json.loads(
                row['architecture']
            )
            network = Network(
                input_size, hidden_size, output_size, row['learning_rate']
            )
            network.restore_weights(
                decode_matrix(bytes(row['hidden_weights'])),
                decode_matrix(bytes(row['output_weights']))
            )

            logger.info(f"Loaded network '{network_id}'")
            return network

    def _row_metadata(self, row: sqlite3.Row) -> Dict[str, Any]:
        architecture = json.loads(row['architecture'])
        return {
            'network_id': row['network_id'],
            'architecture': architecture,
            'weights_shape': _weight_shapes(architecture),
            'learning_rate': row['learning_rate'],
            'trained': bool(row['trained']),
            'accuracy': row['accuracy'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """
        List all networks with metadata, newest first.

        Returns:
            List of network metadata dictionaries
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_METADATA_COLUMNS} FROM networks "
                "ORDER BY created_at DESC"
            )

            networks = [self._row_metadata(row) for row in cursor.fetchall()]

            logger.debug(f"Listed {len(networks)} networks")
            return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Delete a network from the database.

        Args:
            network_id: Unique identifier of the network

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )

            deleted = cursor.rowcount > 0
            if deleted:
                logger.info(f"Deleted network '{network_id}'")
            else:
                logger.warning(
                    f"Could not delete network '{network_id}': not found"
                )
            return deleted

    def delete_old_networks_from_db(self, days: int) -> int:
        """
        Delete networks created more than `days` days ago.

        Args:
            days: Age threshold in days

        Returns:
            int: Number of networks deleted

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                DELETE FROM networks
                WHERE julianday('now') - julianday(created_at) > ?
            ''', (days,))
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        """
        Get network metadata without loading the weights.

        Args:
            network_id: Unique identifier of the network

        Returns:
            Metadata dictionary or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_METADATA_COLUMNS} FROM networks "
                "WHERE network_id = ?",
                (network_id,)
            )

            row = cursor.fetchone()
            if row is None:
                logger.warning(
                    f"Metadata for network '{network_id}' not found"
                )
                return None

            return self._row_metadata(row)


# Database instances keyed by path
_databases: Dict[str, ModelDatabase] = {}

# Errors a registry call reports as a failed result instead of raising
_EXPECTED_ERRORS = (sqlite3.Error, ValueError, NetworkError)


def _get_db(model_dir: str = 'models') -> ModelDatabase:
    """
    Get or create the database instance for a model directory.

    Returns:
        ModelDatabase: The shared instance for `model_dir`
    """
    db_path = os.path.join(model_dir, 'networks.db')
    if db_path not in _databases:
        _databases[db_path] = ModelDatabase(db_path=db_path)
    return _databases[db_path]


def _valid_id(network_id) -> bool:
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False
    return True


def _describe_call(func: Callable, args: tuple, kwargs: dict) -> str:
    params = [repr(a) for a in args]
    params.extend(f"{k}={v!r}" for k, v in kwargs.items())
    return f"{func.__name__}({', '.join(params)})"


def _guarded(failure: Any) -> Callable:
    """
    Make a registry call return `failure` instead of raising.

    Database, validation and deserialization errors are logged as errors;
    anything else is logged with its traceback.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except _EXPECTED_ERRORS as e:
                logger.error(f"{_describe_call(func, args, kwargs)} failed: {e}")
            except Exception as e:
                logger.exception(
                    f"Unexpected error in {_describe_call(func, args, kwargs)}: {e}"
                )
            return failure
        return wrapper
    return decorator


@_guarded(False)
def save_network(
    network: Network,
    network_id: str,
    model_dir: str = 'models',
    trained: bool = True,
    accuracy: Optional[float] = None
) -> bool:
    """
    Save a network to the SQLite database.

    Args:
        network: The network to save
        network_id: A unique identifier for the network
        model_dir: Directory for the database file
        trained: Boolean indicating if the network has been trained
        accuracy: The accuracy of the trained network (0.0 to 1.0)

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> net = create_network(784, 200, 10, 0.1)
        >>> save_network(net, "my_network", trained=False)
        True
    """
    return _valid_id(network_id) and _get_db(model_dir).save_network_to_db(
        network, network_id, trained, accuracy
    )


@_guarded(None)
def load_network(
    network_id: str,
    model_dir: str = 'models'
) -> Optional[Network]:
    """
    Load a network from the SQLite database.

    Returns None when the id is unknown, or when the stored row can't be
    turned back into a network (corrupt blob, mismatched shapes).

    Example:
        >>> net = load_network("my_network")
        >>> if net:
        ...     print(f"Loaded network with sizes {net.sizes}")
    """
    if not _valid_id(network_id):
        return None
    return _get_db(model_dir).load_network_from_db(network_id)


@_guarded([])
def list_saved_networks(
    model_dir: str = 'models'
) -> List[Dict[str, Any]]:
    """List metadata for every saved network, newest first."""
    return _get_db(model_dir).list_networks_from_db()


@_guarded(False)
def delete_network(network_id: str, model_dir: str = 'models') -> bool:
    """Delete a saved network. Returns False if it wasn't there."""
    return _valid_id(network_id) and _get_db(model_dir).delete_network_from_db(
        network_id
    )


@_guarded(-1)
def _purge_networks(days: int, model_dir: str) -> int:
    return _get_db(model_dir).delete_old_networks_from_db(days)


def delete_old_networks(days: int = 2, model_dir: str = 'models') -> int:
    """
    Delete saved networks older than `days` days.

    Args:
        days: Age threshold in days
        model_dir: Directory where the database is stored

    Returns:
        int: Number of networks deleted, or -1 on a database error

    Raises:
        ValueError: If days is negative
    """
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")
    return _purge_networks(days, model_dir)


@_guarded(None)
def get_network_metadata(
    network_id: str,
    model_dir: str = 'models'
) -> Optional[Dict[str, Any]]:
    """Metadata for one network, without decoding its weights."""
    if not _valid_id(network_id):
        return None
    return _get_db(model_dir).get_network_metadata_from_db(network_id)
