"""
Live telemetry pipeline for pose-based exercise tracking.

Turns a stream of pose frames into exercise telemetry in five stages:
    Stage 1: Feature normalization (box-centered, box-scaled landmarks)
    Stage 2: Sequence window (last 30 frames)
    Stage 3: Sequence classification (BiLSTM: exercise, phase, quality)
    Stage 4: Repetition counting (down → up edges)
    Stage 5: Form-score aggregation and throttled feedback
plus offline training of the classifier from labeled sequences.
"""
