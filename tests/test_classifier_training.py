"""Tests for the BiLSTM sequence classifier, model persistence and training.

All tests use the ``tiny_config`` fixture (4-frame window, 3 landmarks) so the
Keras model stays small enough to build and fit in a few seconds.
"""

import asyncio
import threading

import numpy as np
import pytest

from conftest import small_frame

from physio_track.models import EXERCISE_HEAD, OUTPUT_HEADS, PHASE_HEAD, QUALITY_HEAD
from physio_track.pipelines import training
from physio_track.pipelines.classifier import (
    SequenceClassifier,
    get_shared_classifier,
    release_shared_classifier,
)
from physio_track.pipelines.config import EXERCISE_TO_INT, WindowConfig
from physio_track.pipelines.errors import (
    InferenceError,
    ModelBusyError,
    ModelInitError,
    TrainingDataError,
)
from physio_track.pipelines.session import TrackingSession
from physio_track.pipelines.state import LabeledSequence, RepPhase
from physio_track.pipelines.training import train_classifier, train_classifier_async


def _sequence(label: str, n_frames: int = 6, quality: float = 0.8) -> LabeledSequence:
    phases = [RepPhase.DOWN if i % 4 < 2 else RepPhase.UP for i in range(n_frames)]
    return LabeledSequence(
        exercise_type=label,
        frames=[small_frame(0.01 * i) for i in range(n_frames)],
        phases=phases,
        quality=quality,
    )


@pytest.fixture
def sequences():
    return [_sequence("squat"), _sequence("push-up", quality=0.4)]


@pytest.fixture
def classifier(tiny_config):
    clf = SequenceClassifier(tiny_config)
    clf.load_or_create()
    return clf


# ============================================================================
# Model architecture
# ============================================================================

def test_model_has_three_named_heads(classifier):
    model = classifier.model
    assert tuple(model.input_shape[1:]) == (4, 6)
    preds = model.predict(np.zeros((2, 4, 6), dtype=np.float32), verbose=0)
    assert set(preds) == set(OUTPUT_HEADS)
    assert preds[EXERCISE_HEAD].shape == (2, len(EXERCISE_TO_INT))
    assert preds[PHASE_HEAD].shape == (2, 3)
    assert preds[QUALITY_HEAD].shape == (2, 1)
    np.testing.assert_allclose(preds[EXERCISE_HEAD].sum(axis=1), 1.0, atol=1e-5)


# ============================================================================
# Inference
# ============================================================================

class TestClassify:

    def test_valid_classification(self, classifier):
        window = np.random.default_rng(0).normal(size=(4, 6)).astype(np.float32)
        result = classifier.classify(window)
        assert result.exercise_type in EXERCISE_TO_INT
        assert 0.0 <= result.type_confidence <= 1.0
        assert 0.0 <= result.form_quality <= 1.0
        assert result.rep_phase in tuple(RepPhase)

    def test_wrong_shape(self, classifier):
        with pytest.raises(InferenceError, match="shape"):
            classifier.classify(np.zeros((3, 6), dtype=np.float32))

    def test_unloaded_model(self, tiny_config):
        with pytest.raises(InferenceError, match="not loaded"):
            SequenceClassifier(tiny_config).classify(np.zeros((4, 6)))

    def test_session_runs_real_model(self, tiny_config, classifier):
        session = TrackingSession(tiny_config, classifier=classifier)
        session.initialize()

        async def run():
            return [await session.on_pose_frame(small_frame(0.01 * i)) for i in range(4)]

        results = asyncio.run(run())
        assert results[:3] == [None, None, None]
        assert results[3] is not None
        assert session.get_metrics().exercise_type == results[3].exercise_type


# ============================================================================
# Load / create / persist
# ============================================================================

class TestModelStore:

    def test_creates_fresh_model_without_file(self, tiny_config):
        clf = SequenceClassifier(tiny_config)
        clf.load_or_create()
        assert clf.is_loaded
        assert clf.init_error is None
        assert not clf.model_path.exists()

    def test_save_and_reload(self, classifier, tiny_config):
        path = classifier.save()
        assert path.exists()
        assert path.name == "physio-bilstm-model.keras"

        window = np.full((4, 6), 0.1, dtype=np.float32)
        before = classifier.classify(window)

        reloaded = SequenceClassifier(tiny_config)
        reloaded.load_or_create(strict=True)
        after = reloaded.classify(window)
        assert after.exercise_type == before.exercise_type
        assert after.form_quality == pytest.approx(before.form_quality, abs=1e-5)

    def test_corrupt_file_falls_back(self, tiny_config):
        clf = SequenceClassifier(tiny_config)
        clf.model_path.parent.mkdir(parents=True)
        clf.model_path.write_bytes(b"not a keras archive")

        clf.load_or_create()
        assert clf.is_loaded
        assert isinstance(clf.init_error, ModelInitError)

    def test_corrupt_file_strict(self, tiny_config):
        clf = SequenceClassifier(tiny_config)
        clf.model_path.parent.mkdir(parents=True)
        clf.model_path.write_bytes(b"not a keras archive")

        with pytest.raises(ModelInitError):
            clf.load_or_create(strict=True)
        assert not clf.is_loaded

    def test_shape_mismatch(self, classifier, tiny_config):
        classifier.save()
        other = tiny_config.model_copy(
            update={"window": WindowConfig(length=4, num_landmarks=4, include_z=False)}
        )
        with pytest.raises(ModelInitError, match="expects input"):
            SequenceClassifier(other).load_or_create(strict=True)

        fallback = SequenceClassifier(other)
        fallback.load_or_create()
        assert isinstance(fallback.init_error, ModelInitError)
        assert tuple(fallback.model.input_shape[1:]) == (4, 8)

    def test_teardown(self, classifier):
        classifier.teardown()
        assert not classifier.is_loaded
        with pytest.raises(InferenceError):
            classifier.classify(np.zeros((4, 6)))

    def test_shared_classifier_cache(self, tiny_config):
        first = get_shared_classifier(tiny_config)
        assert get_shared_classifier(tiny_config) is first
        first.load_or_create()

        release_shared_classifier(tiny_config)
        assert not first.is_loaded
        assert get_shared_classifier(tiny_config) is not first
        release_shared_classifier()


# ============================================================================
# Training
# ============================================================================

class TestTraining:

    def test_train_persists_model(self, classifier, sequences, tiny_config):
        summary = train_classifier(classifier, sequences, tiny_config)

        assert summary.num_sequences == 2
        assert summary.num_windows == 6
        assert summary.windows_per_label == {"squat": 3, "push-up": 3}
        assert 1 <= summary.epochs_run <= 2
        assert "loss" in summary.final_metrics
        assert classifier.model_path.exists()
        assert summary.model_path == str(classifier.model_path)
        assert not classifier.is_training

    def test_train_async_through_session(self, classifier, sequences, tiny_config):
        session = TrackingSession(tiny_config, classifier=classifier)
        summary = asyncio.run(session.train(sequences))
        assert summary.num_windows == 6
        assert classifier.model_path.exists()
        assert not classifier.is_training

    @pytest.mark.parametrize("bad, match", [
        ([], "No labeled sequences"),
        ([_sequence("yoga")], "Unknown exercise labels"),
        ([_sequence("squat"), _sequence("plank", n_frames=3)], "without a full"),
    ])
    def test_training_data_errors(self, classifier, tiny_config, bad, match):
        with pytest.raises(TrainingDataError, match=match):
            train_classifier(classifier, bad, tiny_config)
        assert not classifier.model_path.exists()
        assert not classifier.is_training

    def test_concurrent_training_rejected(self, classifier, sequences, tiny_config):
        with classifier.exclusive():
            assert classifier.is_training
            with pytest.raises(ModelBusyError):
                train_classifier(classifier, sequences, tiny_config)
        assert not classifier.is_training

    def test_failed_training_keeps_previous_model(
        self, classifier, sequences, tiny_config, monkeypatch
    ):
        train_classifier(classifier, sequences, tiny_config)
        stored = classifier.model_path.read_bytes()
        weights = [w.copy() for w in classifier.model.get_weights()]

        def boom(*args, **kwargs):
            raise RuntimeError("fit exploded")

        monkeypatch.setattr(training, "get_callbacks", boom)
        with pytest.raises(RuntimeError, match="fit exploded"):
            train_classifier(classifier, sequences, tiny_config)

        assert classifier.model_path.read_bytes() == stored
        for old, new in zip(weights, classifier.model.get_weights()):
            np.testing.assert_array_equal(old, new)
        assert not classifier.is_training

    def test_validation_split_keeps_every_label_in_training(
        self, classifier, tiny_config, monkeypatch
    ):
        labels = ["push-up", "squat", "bicep-curl", "plank", "sit-ups"]
        seqs = [_sequence(label) for label in labels]
        config = tiny_config.model_copy(update={
            "training": tiny_config.training.model_copy(update={"validation_split": 0.34}),
        })

        seen = {}
        real_fit = classifier.model.fit

        def spy_fit(x, y, **kwargs):
            seen["train"] = set(y[EXERCISE_HEAD].argmax(axis=1).tolist())
            seen["val"] = set(kwargs["validation_data"][1][EXERCISE_HEAD].argmax(axis=1).tolist())
            return real_fit(x, y, **kwargs)

        monkeypatch.setattr(classifier.model, "fit", spy_fit)
        summary = train_classifier(classifier, seqs, config)

        expected = {EXERCISE_TO_INT[label] for label in labels}
        assert seen["train"] == expected
        assert seen["val"] == expected
        assert summary.num_train_windows == 10
        assert summary.num_val_windows == 5


# ============================================================================
# Training vs. live inference
# ============================================================================

class TestExclusiveAccess:

    def test_inference_refused_while_training(self, classifier):
        classifier.begin_training()
        try:
            with pytest.raises(ModelBusyError):
                classifier.classify(np.zeros((4, 6), dtype=np.float32))
        finally:
            classifier.end_training()
        classifier.classify(np.zeros((4, 6), dtype=np.float32))

    def test_fit_waits_for_running_prediction(
        self, classifier, sequences, tiny_config, monkeypatch
    ):
        started = threading.Event()
        release = threading.Event()
        events = []
        real_predict = classifier.model.predict
        real_fit = classifier.model.fit

        def blocking_predict(*args, **kwargs):
            started.set()
            release.wait(10)
            events.append("predict_done")
            return real_predict(*args, **kwargs)

        def spy_fit(*args, **kwargs):
            events.append("fit")
            return real_fit(*args, **kwargs)

        monkeypatch.setattr(classifier.model, "predict", blocking_predict)
        monkeypatch.setattr(classifier.model, "fit", spy_fit)
        session = TrackingSession(tiny_config, classifier=classifier)

        async def run():
            for i in range(3):
                await session.on_pose_frame(small_frame(0.01 * i))
            inference = asyncio.create_task(session.on_pose_frame(small_frame(0.03)))
            assert await asyncio.to_thread(started.wait, 10)

            training = asyncio.create_task(session.train(sequences))
            await asyncio.sleep(0.3)
            busy_during_wait = classifier.is_training
            fit_early = "fit" in events

            release.set()
            return await inference, await training, busy_during_wait, fit_early

        result, summary, busy_during_wait, fit_early = asyncio.run(run())

        assert busy_during_wait
        assert not fit_early
        assert events[:2] == ["predict_done", "fit"]
        assert result is not None
        assert summary.num_windows == 6
        assert not classifier.is_training

    def test_async_training_loads_model_off_the_loop(
        self, tiny_config, sequences, monkeypatch
    ):
        clf = SequenceClassifier(tiny_config)
        loader_threads = []
        real_load = clf.load_or_create

        def spy_load(strict=False):
            loader_threads.append(threading.get_ident())
            return real_load(strict=strict)

        monkeypatch.setattr(clf, "load_or_create", spy_load)
        summary = asyncio.run(train_classifier_async(clf, sequences, tiny_config))

        assert summary.num_windows == 6
        assert loader_threads
        assert threading.get_ident() not in loader_threads
