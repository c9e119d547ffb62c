"""
I/O utilities for configuration files, model storage and random seeds.
"""

import os
import random
import numpy as np
import tensorflow as tf
import yaml
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


def set_global_seed(seed: int = 42) -> None:
    """
    Set random seeds for reproducibility across all libraries.
    
    Args:
        seed (int): Random seed value
    """
    random.seed(seed)
    np.random.seed(seed)
    tf.random.set_seed(seed)
    os.environ['PYTHONHASHSEED'] = str(seed)
    logger.info(f"Global random seed set to: {seed}")


def load_config(config_path: str) -> Dict:
    """
    Loads tracker configuration from a YAML file.

    Args:
        config_path (str): Path to the YAML configuration file.

    Returns:
        Dict: The loaded configuration (empty dict for an empty file).
    """
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)
    return config or {}


def model_store_path(store_dir: str, model_key: str) -> Path:
    """
    Resolve the on-disk location of the persisted model blob.
    
    Args:
        store_dir (str): Directory holding persisted models
        model_key (str): Fixed model identifier
        
    Returns:
        Path: ``<store_dir>/<model_key>.keras``
    """
    return Path(store_dir) / f"{model_key}.keras"


def save_model_atomic(model: tf.keras.Model, path: Path) -> Path:
    """
    Save a Keras model so that a failed write never clobbers the previous file.
    
    The model is first written next to the target and then moved into place
    with ``os.replace``.
    
    Args:
        model (tf.keras.Model): Model to persist
        path (Path): Final ``.keras`` location
        
    Returns:
        Path: The path the model was written to
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.stem}.tmp.keras")
    try:
        model.save(str(tmp_path))
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    logger.info(f"Model saved: {path}")
    return path


def load_model_file(path: Path) -> Optional[tf.keras.Model]:
    """
    Load a persisted Keras model.
    
    Args:
        path (Path): ``.keras`` file location
        
    Returns:
        Optional[tf.keras.Model]: The model, or None when no file exists.
        
    Raises:
        Exception: Whatever Keras raises for an unreadable file.
    """
    if not path.exists():
        return None
    logger.info(f"Loading model: {path}")
    return tf.keras.models.load_model(str(path), compile=False)
