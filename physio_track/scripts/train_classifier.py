"""
Train the exercise-tracking BiLSTM from labeled pose sequences.

Usage:
    python -m physio_track.scripts.train_classifier \\
        --data datasets/labeled_sequences.json \\
        --config config/tracker.yaml \\
        --epochs 50 --batch_size 32

The trained model replaces ``<model.store_dir>/<model.key>.keras`` only when
the run succeeds.
"""

import os
import sys
import json
import logging
import argparse

os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "3")

from physio_track.data import load_labeled_sequences
from physio_track.pipelines.classifier import get_shared_classifier
from physio_track.pipelines.config import load_tracker_config
from physio_track.pipelines.errors import ModelInitError, TrainingDataError
from physio_track.pipelines.training import train_classifier

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Train the physio-track sequence classifier.")
    parser.add_argument("--data", required=True, help="JSON file of labeled sequences")
    parser.add_argument("--config", default=None, help="Tracker YAML config (default: config/tracker.yaml)")
    parser.add_argument("--epochs", type=int, default=None)
    parser.add_argument("--batch_size", type=int, default=None)
    parser.add_argument("--model_dir", default=None, help="Override model.store_dir")
    parser.add_argument("--strict", action="store_true",
                        help="Fail instead of starting fresh when the stored model is unreadable")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(name)s | %(message)s")
    args = parse_args(argv)

    config = load_tracker_config(args.config)
    if args.epochs is not None:
        config.training.epochs = args.epochs
    if args.batch_size is not None:
        config.training.batch_size = args.batch_size
    if args.model_dir is not None:
        config.model.store_dir = args.model_dir

    classifier = get_shared_classifier(config)
    try:
        classifier.load_or_create(strict=args.strict)
        sequences = load_labeled_sequences(args.data)
        summary = train_classifier(classifier, sequences, config)
    except (ModelInitError, TrainingDataError) as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1

    print(json.dumps(summary.model_dump(), indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
