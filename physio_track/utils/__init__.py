"""
Utility functions for the physio-track package.
"""

from .io_utils import (
    set_global_seed,
    load_config,
    model_store_path,
    save_model_atomic,
    load_model_file,
)

__all__ = [
    'set_global_seed',
    'load_config',
    'model_store_path',
    'save_model_atomic',
    'load_model_file',
]
