"""
config.py
~~~~~~~~~

Environment-driven settings and logging setup shared by the API server
and the command-line scripts.
"""

import os
import logging

# Server
PORT = int(os.getenv('PORT', '8000'))
IS_PRODUCTION = os.getenv('FLASK_ENV') == 'production'

# Storage
MODEL_DIR = os.getenv('FFNET_MODEL_DIR', 'models')
DATA_DIR = os.getenv('FFNET_DATA_DIR', 'data')
TRAIN_CSV = os.getenv(
    'FFNET_TRAIN_CSV', os.path.join(DATA_DIR, 'mnist_train.csv')
)
TEST_CSV = os.getenv(
    'FFNET_TEST_CSV', os.path.join(DATA_DIR, 'mnist_test.csv')
)

# Network defaults (28x28 digits, 10 classes)
INPUT_SIZE = 784
OUTPUT_SIZE = 10
HIDDEN_SIZE = int(os.getenv('FFNET_HIDDEN_SIZE', '200'))
LEARNING_RATE = float(os.getenv('FFNET_LEARNING_RATE', '0.1'))
EPOCHS = int(os.getenv('FFNET_EPOCHS', '5'))

# Saved networks older than this are removed by the cleanup task
CLEANUP_DAYS = int(os.getenv('FFNET_CLEANUP_DAYS', '2'))


def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # In production, silence noisy third-party logs but keep ours visible
    if IS_PRODUCTION:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('ffnet').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)
