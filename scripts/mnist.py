#!/usr/bin/env python3
"""
Train or evaluate a three-layer network on MNIST CSV files.

Usage:
    python scripts/mnist.py --mnist train [--epochs 5] [--hidden 200]
    python scripts/mnist.py --mnist predict

Training reads the training CSV, runs per-sample backpropagation for the
requested number of epochs and writes hweights.model / oweights.model to
the model directory. Prediction loads those weights and reports accuracy
on the test CSV.
"""

import os
import sys
import time
import argparse
import logging

# Allow running from a checkout without installing the package
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ffnet import config
from ffnet.mnist_loader import load_csv, one_hot
from ffnet.network import create_network
from ffnet.serialization import save_weights, load_weights
from ffnet.training import fit, evaluate

logger = logging.getLogger('ffnet.scripts.mnist')


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.split('\n\n')[0])
    parser.add_argument('--mnist', choices=['train', 'predict'], required=True,
                        help='train a new network or evaluate saved weights')
    parser.add_argument('--train-csv', default=config.TRAIN_CSV)
    parser.add_argument('--test-csv', default=config.TEST_CSV)
    parser.add_argument('--model-dir', default=config.DATA_DIR,
                        help='directory for hweights.model / oweights.model')
    parser.add_argument('--epochs', type=int, default=config.EPOCHS)
    parser.add_argument('--hidden', type=int, default=config.HIDDEN_SIZE)
    parser.add_argument('--learning-rate', type=float,
                        default=config.LEARNING_RATE)
    parser.add_argument('--seed', type=int, default=None)
    return parser.parse_args(argv)


def train(args: argparse.Namespace) -> None:
    samples = load_csv(args.train_csv)
    training_data = [(x, one_hot(label, config.OUTPUT_SIZE)) for x, label in samples]

    net = create_network(
        config.INPUT_SIZE, args.hidden, config.OUTPUT_SIZE,
        args.learning_rate, seed=args.seed
    )

    start = time.time()
    fit(net, training_data, args.epochs)
    print(f"Time taken to train: {time.time() - start:.2f}s")

    save_weights(net, args.model_dir)
    print(f"Weights saved to {args.model_dir}")


def predict(args: argparse.Namespace) -> None:
    test_data = load_csv(args.test_csv)
    if not test_data:
        raise ValueError(f"No samples in {args.test_csv}")

    net = create_network(
        config.INPUT_SIZE, args.hidden, config.OUTPUT_SIZE, args.learning_rate
    )
    load_weights(net, args.model_dir)

    start = time.time()
    correct = evaluate(net, test_data)
    print(f"Time taken to check: {time.time() - start:.2f}s")
    print(f"Score: {correct}/{len(test_data)} ({correct / len(test_data):.2%})")


def main(argv=None) -> int:
    config.configure_logging()
    args = parse_args(argv)

    try:
        if args.mnist == 'train':
            train(args)
        else:
            predict(args)
    except (OSError, ValueError) as e:
        logger.error(f"{args.mnist} failed: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
