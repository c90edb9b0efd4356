"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for training and
querying three-layer networks.

This module provides endpoints for:
- Creating and managing networks
- Training networks with real-time progress updates via WebSockets
- Running predictions on arbitrary input vectors
- Inspecting MNIST test examples the network gets right or wrong
- Persisting networks to/from the SQLite model database

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background training tasks
- SQLite for network persistence
"""

import uuid
import base64
import logging
from io import BytesIO
from typing import Dict, Any, List, Optional, Tuple

import gevent
import numpy as np
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from ffnet import config
from ffnet import mnist_loader
from ffnet.exceptions import DimensionMismatch, InvalidConfiguration
from ffnet.network import Network
from ffnet.training import fit, evaluate
from ffnet.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks
)

logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})

# SocketIO enables real-time communication (WebSockets) for training updates
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not config.IS_PRODUCTION,
    engineio_logger=not config.IS_PRODUCTION,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

MODEL_DIR = config.MODEL_DIR

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}

# MNIST dataset - loaded once at startup
# training_data holds (inputs, one-hot target), test_data (inputs, label)
training_data: Any = None
test_data: Any = None


# ============================================================================
# DATA LOADING
# ============================================================================

def load_mnist_data(
    train_path: str = config.TRAIN_CSV,
    test_path: str = config.TEST_CSV
) -> bool:
    """
    Load the MNIST CSV files into global variables.

    Missing files are logged and leave the datasets unset, so the server
    still runs for prediction-only use.

    Returns:
        bool: True if both files were loaded
    """
    global training_data, test_data

    logger.info("Loading MNIST data...")
    try:
        training_data, _, test_data = mnist_loader.load_data_wrapper(
            train_path, test_path
        )
    except FileNotFoundError as e:
        logger.warning(f"MNIST data not available: {e}")
        return False

    logger.info(
        f"Data loaded: {len(training_data)} training, "
        f"{len(test_data)} test"
    )
    return True


def reload_saved_networks() -> None:
    """
    Reload all saved networks from the database into memory.

    Called at startup to restore networks saved before a restart.
    """
    saved_networks = list_saved_networks(MODEL_DIR)

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id, MODEL_DIR)
        if net is None:
            logger.warning(f"Failed to load network {network_id}")
            continue

        active_networks[network_id] = {
            'network': net,
            'architecture': net_info['architecture'],
            'learning_rate': net_info['learning_rate'],
            'trained': net_info['trained'],
            'accuracy': net_info['accuracy']
        }
        loaded_count += 1

    logger.info(f"Reloaded {loaded_count} network(s) from database")


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60
CLEANUP_RETRY_SECONDS = 60 * 60

_cleanup_task_started = False


def remove_network(network_id: str) -> Tuple[bool, bool]:
    """
    Forget a network in memory and delete its saved row.

    Returns:
        (removed_from_memory, removed_from_disk)
    """
    in_memory = active_networks.pop(network_id, None) is not None
    on_disk = delete_network(network_id, MODEL_DIR)
    return in_memory, on_disk


def run_cleanup(days: int) -> int:
    """
    Delete saved networks older than `days` days and drop trained
    networks that no longer have a saved row.

    Returns:
        Number of rows deleted, or -1 if the database call failed
    """
    deleted_count = delete_old_networks(days=days, model_dir=MODEL_DIR)
    if deleted_count > 0:
        sync_active_networks()
    return deleted_count


def cleanup_old_networks_task() -> None:
    """Greenlet body: clean up now, then once per CLEANUP_INTERVAL_SECONDS."""
    while True:
        try:
            deleted_count = run_cleanup(config.CLEANUP_DAYS)
            cleanup_finished_training_jobs()
        except Exception as e:
            logger.exception(f"Scheduled cleanup failed: {e}")
            gevent.sleep(CLEANUP_RETRY_SECONDS)
            continue

        if deleted_count < 0:
            logger.error("Scheduled cleanup could not reach the database")
        else:
            logger.info(
                f"Scheduled cleanup removed {deleted_count} network(s) older "
                f"than {config.CLEANUP_DAYS} day(s)"
            )
        gevent.sleep(CLEANUP_INTERVAL_SECONDS)


def sync_active_networks() -> None:
    """Forget trained networks whose saved row has been deleted."""
    saved_ids = {net['network_id'] for net in list_saved_networks(MODEL_DIR)}
    orphaned = [
        nid for nid, info in active_networks.items()
        if info['trained'] and nid not in saved_ids
    ]
    for nid in orphaned:
        active_networks.pop(nid)
    if orphaned:
        logger.info(f"Dropped {len(orphaned)} deleted network(s) from memory")


FINISHED_JOB_STATUSES = frozenset({'completed', 'failed'})


def cleanup_finished_training_jobs() -> None:
    """Forget jobs that are no longer pending or training."""
    finished = [
        job_id for job_id, job in training_jobs.items()
        if job.get('status') in FINISHED_JOB_STATUSES
    ]
    for job_id in finished:
        training_jobs.pop(job_id)
    if finished:
        logger.info(f"Dropped {len(finished)} finished training job(s)")


def start_cleanup_task() -> None:
    """Spawn the cleanup greenlet once per process."""
    global _cleanup_task_started

    if not _cleanup_task_started:
        _cleanup_task_started = True
        gevent.spawn(cleanup_old_networks_task)


def startup() -> None:
    """Configure logging, load data and saved networks, start cleanup."""
    config.configure_logging()
    load_mnist_data()
    reload_saved_networks()
    training_jobs.clear()
    start_cleanup_task()


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and statistics."""
    active_statuses = ('pending', 'training')
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in active_statuses
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training,
        'data_loaded': training_data is not None
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new network.

    Request body (all optional):
        {
            'input_size': 784,
            'hidden_size': 200,
            'output_size': 10,
            'learning_rate': 0.1,
            'seed': 42
        }

    Returns:
        JSON with network_id, architecture, and status
    """
    data = request.get_json(silent=True) or {}
    input_size = data.get('input_size', config.INPUT_SIZE)
    hidden_size = data.get('hidden_size', config.HIDDEN_SIZE)
    output_size = data.get('output_size', config.OUTPUT_SIZE)
    learning_rate = data.get('learning_rate', config.LEARNING_RATE)
    seed = data.get('seed')

    # bool is an int subclass and default_rng rejects negative seeds
    if seed is not None and (
        isinstance(seed, bool) or not isinstance(seed, int) or seed < 0
    ):
        return jsonify({'error': 'seed must be a non-negative integer'}), 400

    try:
        net = Network(
            input_size, hidden_size, output_size, learning_rate, seed=seed
        )
    except InvalidConfiguration as e:
        logger.warning(f"Invalid network configuration requested: {e}")
        return jsonify({'error': str(e)}), 400

    network_id = str(uuid.uuid4())
    active_networks[network_id] = {
        'network': net,
        'architecture': net.sizes,
        'learning_rate': net.learning_rate,
        'trained': False,
        'accuracy': None
    }

    logger.info(f"Created network {network_id} with architecture {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.sizes,
        'learning_rate': net.learning_rate,
        'status': 'created'
    }), 201


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body (optional):
        {'epochs': 5}

    Returns:
        JSON with job_id, network_id, and status
    """
    if network_id not in active_networks:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    if not training_data:
        logger.error("Training data not loaded")
        return jsonify({'error': 'Training data not available'}), 503

    data = request.get_json(silent=True) or {}
    epochs = data.get('epochs', config.EPOCHS)

    if not isinstance(epochs, int) or isinstance(epochs, bool) or epochs < 1:
        return jsonify({'error': 'epochs must be a positive integer'}), 400

    net = active_networks[network_id]['network']
    if net.input_size != len(training_data[0][0]) or \
            net.output_size != len(training_data[0][1]):
        return jsonify({
            'error': 'Network architecture does not match the training data'
        }), 400

    job_id = str(uuid.uuid4())
    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': epochs
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"epochs={epochs}, lr={net.learning_rate}"
    )

    # Run training in background so we can return immediately
    socketio.start_background_task(
        train_network_task, network_id, job_id, epochs
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(network_id: str, job_id: str, epochs: int) -> None:
    """
    Background task that trains a network.

    Sends progress updates via WebSocket after each epoch, then saves
    the trained network to the database.
    """
    net = active_networks[network_id]['network']

    def on_epoch_complete(data: Dict[str, Any]) -> None:
        """Called after each training epoch to send progress updates."""
        progress = (data['epoch'] / data['total_epochs']) * 100

        training_jobs[job_id]['status'] = 'training'
        training_jobs[job_id]['progress'] = progress

        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'epoch': data['epoch'],
            'total_epochs': data['total_epochs'],
            'accuracy': data['accuracy'],
            'mean_squared_error': data['mean_squared_error'],
            'elapsed_time': data['elapsed_time'],
            'progress': progress,
            'correct': data['correct'],
            'total': data['total']
        })
        gevent.sleep(0)

    # Per-sample training is long; yield every so often so HTTP requests
    # keep being served
    counter = {'samples': 0}

    def yield_to_other_tasks() -> None:
        counter['samples'] += 1
        if counter['samples'] % 100 == 0:
            gevent.sleep(0)

    try:
        logger.info(f"Starting training for job {job_id}")

        fit(
            net,
            training_data,
            epochs,
            test_data=test_data,
            callback=on_epoch_complete,
            yield_func=yield_to_other_tasks
        )

        accuracy: Optional[float] = None
        if test_data:
            accuracy = evaluate(net, test_data) / len(test_data)

        active_networks[network_id]['trained'] = True
        active_networks[network_id]['accuracy'] = accuracy

        training_jobs[job_id]['status'] = 'completed'
        training_jobs[job_id]['accuracy'] = accuracy
        training_jobs[job_id]['progress'] = 100

        save_network(
            net, network_id, model_dir=MODEL_DIR,
            trained=True, accuracy=accuracy
        )

        if accuracy is not None:
            logger.info(f"Training completed for job {job_id}: accuracy {accuracy:.2%}")
        else:
            logger.info(f"Training completed for job {job_id}")

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'accuracy': accuracy,
            'progress': 100
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return jsonify({'error': 'Training job not found'}), 404


@app.route('/api/networks/<network_id>/predict', methods=['POST'])
def predict(network_id: str):
    """
    Run a forward pass.

    Request body:
        {'inputs': [0.01, 0.5, ...]}  # input_size values

    Returns:
        JSON with the output activations and the index of the largest one
    """
    if network_id not in active_networks:
        logger.warning(f"Prediction requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    inputs = data.get('inputs')
    if not isinstance(inputs, list):
        return jsonify({'error': 'inputs must be a list of numbers'}), 400

    net = active_networks[network_id]['network']
    try:
        output = net.predict(inputs)
    except DimensionMismatch as e:
        return jsonify({'error': str(e)}), 400
    except (TypeError, ValueError):
        return jsonify({'error': 'inputs must be a list of numbers'}), 400

    return jsonify({
        'network_id': network_id,
        'output': array_to_float_list(output),
        'predicted': int(np.argmax(output))
    }), 200


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """
    List networks held in memory, followed by those only in the database.

    In-memory entries win when a network is in both places.
    """
    listing = {
        nid: {
            'network_id': nid,
            'architecture': info['architecture'],
            'learning_rate': info['learning_rate'],
            'trained': info['trained'],
            'accuracy': info['accuracy'],
            'status': 'in_memory'
        }
        for nid, info in active_networks.items()
    }
    for saved in list_saved_networks(MODEL_DIR):
        listing.setdefault(saved['network_id'], dict(saved, status='saved'))

    return jsonify({'networks': list(listing.values())}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    in_memory, on_disk = remove_network(network_id)
    if not (in_memory or on_disk):
        return jsonify({'error': 'Network not found'}), 404

    logger.info(f"Deleted network {network_id} (memory={in_memory}, disk={on_disk})")
    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': in_memory,
        'deleted_from_disk': on_disk
    }), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """Delete every network known in memory or in the database."""
    network_ids = set(active_networks)
    network_ids.update(net['network_id'] for net in list_saved_networks(MODEL_DIR))

    outcomes = [remove_network(nid) for nid in sorted(network_ids)]
    from_memory = sum(1 for in_memory, _ in outcomes if in_memory)
    from_disk = sum(1 for _, on_disk in outcomes if on_disk)

    logger.info(
        f"Deleted {len(outcomes)} network(s): "
        f"{from_memory} in memory, {from_disk} on disk"
    )
    return jsonify({
        'deleted_count': len(outcomes),
        'deleted_from_memory': from_memory,
        'deleted_from_disk': from_disk,
        'message': f'Deleted {len(outcomes)} network(s)'
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Run the scheduled cleanup now.

    Request body (optional):
        {'days': 2}
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', config.CLEANUP_DAYS)

    if isinstance(days, bool) or not isinstance(days, (int, float)) or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    deleted_count = run_cleanup(int(days))
    if deleted_count < 0:
        return jsonify({'error': 'Cleanup failed, see server log'}), 500

    return jsonify({
        'deleted_count': deleted_count,
        'days': days,
        'message': f'Deleted {deleted_count} network(s) older than {days} day(s)'
    }), 200


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def array_to_float_list(array: np.ndarray) -> List[float]:
    """Convert a numpy array to a list of floats (for JSON serialization)."""
    return [float(val) for val in array.flatten()]


def create_digit_image(
    image_data: np.ndarray,
    predicted: int,
    actual: int
) -> Optional[str]:
    """
    Create a base64-encoded PNG image of a square input such as a digit.

    Args:
        image_data: Input vector; its length must be a perfect square
        predicted: The class the network predicted
        actual: The correct class

    Returns:
        Base64-encoded PNG image string, or None for non-square inputs
    """
    side = int(round(np.sqrt(image_data.size)))
    if side * side != image_data.size:
        return None

    plt.figure(figsize=(3, 3))
    plt.imshow(image_data.reshape(side, side), cmap='gray')
    plt.title(f"Predicted: {predicted} | Actual: {actual}")
    plt.axis('off')

    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


def find_example(network_id: str, successful: bool, max_attempts: int):
    """
    Look for a random test sample the network classifies correctly
    (or incorrectly) and build the JSON response for it.
    """
    label = 'Successful' if successful else 'Unsuccessful'

    if network_id not in active_networks:
        logger.warning(f"{label} example requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    if not test_data:
        logger.error("Test data not loaded")
        return jsonify({'error': 'Test data not available'}), 503

    net = active_networks[network_id]['network']
    if net.input_size != len(test_data[0][0]):
        return jsonify({
            'error': 'Network architecture does not match the test data'
        }), 400

    for attempt in range(max_attempts):
        index = int(np.random.randint(0, len(test_data)))
        x, y = test_data[index]

        output = net.predict(x)
        predicted_digit = int(np.argmax(output))
        actual_digit = int(y)

        if (predicted_digit == actual_digit) == successful:
            logger.debug(f"Found {label.lower()} example on attempt {attempt + 1}")

            return jsonify({
                'network_id': network_id,
                'example_index': index,
                'predicted_digit': predicted_digit,
                'actual_digit': actual_digit,
                'image_data': create_digit_image(x, predicted_digit, actual_digit),
                'output_weights': net.output_weights.tolist(),
                'network_output': array_to_float_list(output)
            }), 200

    logger.warning(f"No {label.lower()} example found after {max_attempts} attempts")
    return jsonify({
        'error': f'No {label.lower()} example found after {max_attempts} attempts'
    }), 404


# ============================================================================
# EXAMPLE ENDPOINTS
# ============================================================================

@app.route('/api/networks/<network_id>/successful_example', methods=['GET'])
def get_successful_example(network_id: str):
    """Return a random test example the network predicted correctly."""
    return find_example(network_id, successful=True, max_attempts=100)


@app.route('/api/networks/<network_id>/unsuccessful_example', methods=['GET'])
def get_unsuccessful_example(network_id: str):
    """Return a random test example the network predicted incorrectly."""
    return find_example(network_id, successful=False, max_attempts=200)


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    startup()
    socketio.run(
        app,
        host='0.0.0.0',
        port=config.PORT,
        debug=not config.IS_PRODUCTION
    )
