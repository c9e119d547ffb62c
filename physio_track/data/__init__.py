"""
Labeled pose-sequence loading and windowing for classifier training.
"""

from .dataset_builder import (
    load_labeled_sequences,
    window_sequence,
    build_training_arrays,
    split_train_validation,
)

__all__ = [
    'load_labeled_sequences',
    'window_sequence',
    'build_training_arrays',
    'split_train_validation',
]
