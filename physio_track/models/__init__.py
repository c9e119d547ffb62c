"""
Model building utilities for pose-sequence exercise tracking.
"""

from .model_builder import (
    build_bilstm_multitask_model,
    compile_multitask_model,
    get_callbacks,
    EXERCISE_HEAD,
    PHASE_HEAD,
    QUALITY_HEAD,
    OUTPUT_HEADS,
)

__all__ = [
    'build_bilstm_multitask_model',
    'compile_multitask_model',
    'get_callbacks',
    'EXERCISE_HEAD',
    'PHASE_HEAD',
    'QUALITY_HEAD',
    'OUTPUT_HEADS',
]
