"""
Model architecture builders for pose-sequence exercise tracking.

This module provides:
- The multi-output bidirectional LSTM used for live tracking
- Compilation with per-head losses
- Standard training callbacks
"""

import logging
import tensorflow as tf
from tensorflow.keras import layers, models
from tensorflow.keras.callbacks import EarlyStopping, ReduceLROnPlateau
from typing import List

logger = logging.getLogger(__name__)


# Output head names; also the keys of training targets and predictions.
EXERCISE_HEAD = 'exercise_type'
PHASE_HEAD = 'rep_phase'
QUALITY_HEAD = 'form_quality'
OUTPUT_HEADS = (EXERCISE_HEAD, PHASE_HEAD, QUALITY_HEAD)


def build_bilstm_multitask_model(
    seq_length: int = 30,
    num_features: int = 99,
    num_exercises: int = 10,
    num_phases: int = 3,
    hidden_units: int = 64,
    dense_units: int = 64,
    dropout: float = 0.2,
    head_dropout: float = 0.3,
    name: str = "physio_bilstm",
) -> models.Model:
    """
    Build the multi-output sequence classifier.
    
    Architecture:
        Input  (B, T, F)   (B=batch, T=frames, F=features)
        Bidirectional LSTM (hidden_units)        → per-step sequence
        Bidirectional LSTM (hidden_units // 2)   → summary vector
        Dense(dense_units, relu) → Dropout
        ├── Dense(num_exercises, softmax)  'exercise_type'
        ├── Dense(num_phases, softmax)     'rep_phase'
        └── Dense(1, sigmoid)              'form_quality'
    
    Args:
        seq_length (int): Frames per window
        num_features (int): Features per frame
        num_exercises (int): Number of exercise classes
        num_phases (int): Number of rep-phase classes
        hidden_units (int): Units of the first LSTM (per direction)
        dense_units (int): Units of the shared dense trunk
        dropout (float): Input/recurrent dropout inside the LSTMs
        head_dropout (float): Dropout before the output heads
        name (str): Model name
        
    Returns:
        models.Model: Uncompiled Keras model with dict outputs
    """
    logger.info(
        f"Building BiLSTM: window={seq_length}, features={num_features}, "
        f"exercises={num_exercises}, phases={num_phases}"
    )
    
    inputs = layers.Input(shape=(seq_length, num_features), name="pose_sequence")
    x = layers.Bidirectional(
        layers.LSTM(hidden_units, return_sequences=True,
                    dropout=dropout, recurrent_dropout=dropout),
        merge_mode='concat',
    )(inputs)
    x = layers.Bidirectional(
        layers.LSTM(max(hidden_units // 2, 1), return_sequences=False,
                    dropout=dropout, recurrent_dropout=dropout),
        merge_mode='concat',
    )(x)
    x = layers.Dense(dense_units, activation='relu')(x)
    x = layers.Dropout(head_dropout)(x)
    
    outputs = {
        EXERCISE_HEAD: layers.Dense(num_exercises, activation='softmax', name=EXERCISE_HEAD)(x),
        PHASE_HEAD: layers.Dense(num_phases, activation='softmax', name=PHASE_HEAD)(x),
        QUALITY_HEAD: layers.Dense(1, activation='sigmoid', name=QUALITY_HEAD)(x),
    }
    
    model = models.Model(inputs, outputs, name=name)
    logger.info(f"Model built: {model.count_params():,} total parameters")
    
    return model


def compile_multitask_model(model: models.Model, learning_rate: float = 1e-3) -> models.Model:
    """
    Compile all three heads jointly.
    
    Categorical cross-entropy for the two classification heads, mean squared
    error for the quality regressor.
    
    Args:
        model (models.Model): Model from :func:`build_bilstm_multitask_model`
        learning_rate (float): Adam learning rate
        
    Returns:
        models.Model: The same model, compiled
    """
    model.compile(
        optimizer=tf.keras.optimizers.Adam(learning_rate=learning_rate),
        loss={
            EXERCISE_HEAD: 'categorical_crossentropy',
            PHASE_HEAD: 'categorical_crossentropy',
            QUALITY_HEAD: 'mse',
        },
        metrics={
            EXERCISE_HEAD: ['accuracy'],
            PHASE_HEAD: ['accuracy'],
            QUALITY_HEAD: [tf.keras.metrics.MeanAbsoluteError(name='mae')],
        },
    )
    return model


def get_callbacks(
    monitor: str = 'val_loss',
    patience: int = 10,
    min_delta: float = 0.001
) -> List:
    """
    Create standard training callbacks.
    
    Returns:
    - EarlyStopping: Stop training when monitored metric stops improving
    - ReduceLROnPlateau: Reduce learning rate when metric plateaus
    
    Args:
        monitor (str): Metric to monitor ('val_loss' or 'loss')
        patience (int): Epochs to wait before stopping/reducing LR
        min_delta (float): Minimum change to qualify as improvement
        
    Returns:
        List: List of Keras callbacks
    """
    callbacks = [
        EarlyStopping(
            monitor=monitor,
            patience=patience,
            restore_best_weights=True,
            min_delta=min_delta,
            verbose=0
        ),
        ReduceLROnPlateau(
            monitor=monitor,
            factor=0.5,
            patience=max(patience // 2, 1),
            min_lr=1e-7,
            verbose=0
        ),
    ]
    
    logger.info(f"Callbacks created: monitoring '{monitor}', patience={patience}")
    
    return callbacks
