"""
Analysis service tests with fake classifiers and fake pipelines.
"""

import asyncio

import numpy as np
import pytest
from PIL import Image

from emotion_detection.inference import predict_emotion
from emotion_detection.inference.base import EmotionClassifier, SharedPipeline
from emotion_detection.inference.labels import IMAGE_LABELS, REMOTE_LABELS, TEXT_LABELS
from emotion_detection.inference.predict_image import (
    DeepFaceImageClassifier,
    LocalImageClassifier,
    RemoteImageClassifier,
    get_image_classifier,
)
from emotion_detection.inference.predict_text import LocalTextClassifier, get_text_classifier
from emotion_detection.utils.errors import InvalidResponse, ModelUnavailable


class FakeClassifier(EmotionClassifier):
    def __init__(self, table, raw=None, error=None, attribution="Analysis performed using a fake model"):
        self.label_table = table
        self.raw = raw or []
        self.error = error
        self.attribution = attribution
        self.seen = []

    async def classify(self, data):
        self.seen.append(data)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return list(self.raw)


def _frame():
    return Image.new("RGB", (32, 32), color=(200, 180, 160))


@pytest.fixture
def install(monkeypatch):
    def _install(text=None, image=None):
        if text is not None:
            monkeypatch.setattr(predict_emotion, "get_text_classifier", lambda backend=None: text)
        if image is not None:
            monkeypatch.setattr(predict_emotion, "get_image_classifier", lambda backend=None: image)

    return _install


class TestAnalyzeText:
    def test_end_to_end(self, install):
        install(text=FakeClassifier(TEXT_LABELS, [("joy", 0.8), ("neutral", 0.2)]))
        data = asyncio.run(predict_emotion.analyze_text("What a lovely day"))

        assert data.dominant_emotion == "Happy"
        assert data.confidence == pytest.approx(0.8)
        assert data.mixed_emotions == ("Happy", "Neutral")
        assert data.analysis_summary.startswith("The text primarily expresses happy emotions")
        assert data.analysis_summary.endswith("Analysis performed using a fake model.")

    def test_unmapped_output_gives_neutral(self, install):
        install(text=FakeClassifier(TEXT_LABELS, [("fear", 1.0)]))
        data = asyncio.run(predict_emotion.analyze_text("Something is behind me"))

        assert data.dominant_emotion == "Neutral"
        assert data.confidence == 0
        assert data.mixed_emotions == ()

    def test_classifier_errors_propagate(self, install):
        install(text=FakeClassifier(TEXT_LABELS, error=ModelUnavailable("down", backend="local")))
        with pytest.raises(ModelUnavailable):
            asyncio.run(predict_emotion.analyze_text("hello"))


class TestAnalyzeImage:
    def test_accepts_array_and_uses_image_summary(self, install):
        fake = FakeClassifier(IMAGE_LABELS, [("happy", 0.5), ("surprise", 0.5)])
        install(image=fake)
        array = np.zeros((16, 16, 3), dtype=np.uint8)
        data = asyncio.run(predict_emotion.analyze_image(array, face_crop=False))

        assert isinstance(fake.seen[0], Image.Image)
        assert fake.seen[0].mode == "RGB"
        assert data.dominant_emotion == "Happy"
        assert data.analysis_summary.startswith("Facial expression analysis detected happy as the primary emotion")
        assert "with additional expressions of surprised" in data.analysis_summary

    def test_remote_categories(self, install):
        install(image=FakeClassifier(REMOTE_LABELS, [("Contempt", 0.6), ("Fearful", 0.4)]))
        data = asyncio.run(predict_emotion.analyze_image(_frame(), face_crop=False))

        assert len(data.emotions) == 8
        assert data.mixed_emotions == ("Contempt", "Fearful")

    def test_face_crop_without_face_classifies_full_frame(self, install):
        fake = FakeClassifier(IMAGE_LABELS, [("neutral", 1.0)])
        install(image=fake)
        frame = Image.new("RGB", (120, 90), color=(128, 128, 128))
        data = asyncio.run(predict_emotion.analyze_image(frame, face_crop=True))

        assert fake.seen[0].size == (120, 90)
        assert data.dominant_emotion == "Neutral"

    def test_face_crop_result_is_classified(self, install, monkeypatch):
        fake = FakeClassifier(IMAGE_LABELS, [("happy", 1.0)])
        install(image=fake)
        cropped = []

        def crop(img):
            face = img.crop((4, 4, 20, 20))
            cropped.append(face)
            return face

        monkeypatch.setattr(predict_emotion, "crop_largest_face", crop)
        data = asyncio.run(predict_emotion.analyze_image(_frame(), face_crop=True))

        assert fake.seen == cropped
        assert fake.seen[0].size == (16, 16)
        assert data.dominant_emotion == "Happy"


class TestAnalyzeCombined:
    def test_both_modalities(self, install):
        install(
            text=FakeClassifier(TEXT_LABELS, [("sadness", 1.0)]),
            image=FakeClassifier(IMAGE_LABELS, [("angry", 1.0)]),
        )
        res = asyncio.run(predict_emotion.analyze_combined("I miss them", _frame()))

        assert res.text.dominant_emotion == "Sad"
        assert res.image.dominant_emotion == "Angry"
        assert res.errors == {}

    def test_one_failure_does_not_affect_the_other(self, install):
        install(
            text=FakeClassifier(TEXT_LABELS, [("joy", 1.0)]),
            image=FakeClassifier(IMAGE_LABELS, error=InvalidResponse("garbled")),
        )
        res = asyncio.run(predict_emotion.analyze_combined("Great news", _frame()))

        assert res.text is not None
        assert res.text.dominant_emotion == "Happy"
        assert res.image is None
        assert res.errors == {"image": "garbled"}

    def test_text_only(self, install):
        text = FakeClassifier(TEXT_LABELS, [("anger", 1.0)])
        install(text=text)
        res = asyncio.run(predict_emotion.analyze_combined("  so annoying  ", None))

        assert text.seen == ["so annoying"]
        assert res.image is None
        assert res.text.dominant_emotion == "Angry"

    def test_no_modality(self):
        with pytest.raises(ValueError):
            asyncio.run(predict_emotion.analyze_combined("   ", None))


class FakePipe:
    def __init__(self, output):
        self.output = output
        self.calls = []

    def __call__(self, data, **kwargs):
        self.calls.append((data, kwargs))
        return self.output


class TestLocalClassifiers:
    def test_text_pipeline_output_is_flattened(self):
        pipe = FakePipe([[{"label": "joy", "score": 0.7}, {"label": "fear", "score": 0.3}]])
        classifier = LocalTextClassifier(SharedPipeline("fake-text", lambda: pipe))
        pairs = asyncio.run(classifier.classify("yay"))

        assert pairs == [("joy", 0.7), ("fear", 0.3)]
        assert pipe.calls[0][1]["top_k"] is None

    def test_image_pipeline_uses_top_k(self):
        pipe = FakePipe([{"label": "sad", "score": 0.9}])
        classifier = LocalImageClassifier(SharedPipeline("fake-image", lambda: pipe), top_k=7)
        pairs = asyncio.run(classifier.classify(_frame()))

        assert pairs == [("sad", 0.9)]
        assert pipe.calls[0][1]["top_k"] == 7

    def test_inference_failure_is_model_unavailable(self):
        def broken(data, **kwargs):
            raise RuntimeError("CUDA out of memory")

        classifier = LocalTextClassifier(SharedPipeline("broken", lambda: broken))
        with pytest.raises(ModelUnavailable):
            asyncio.run(classifier.classify("hello"))

    def test_deepface_scores(self):
        class FakeDeepFace:
            @staticmethod
            def analyze(img, actions=None, enforce_detection=True):
                assert img.shape == (32, 32, 3)
                return [{"emotion": {"happy": 80.0, "fear": 15.0, "neutral": 5.0}}]

        classifier = DeepFaceImageClassifier(SharedPipeline("fake-deepface", lambda: FakeDeepFace))
        pairs = asyncio.run(classifier.classify(_frame()))
        assert pairs == [("happy", 80.0), ("fear", 15.0), ("neutral", 5.0)]

    def test_deepface_without_emotion_block(self):
        class FakeDeepFace:
            @staticmethod
            def analyze(img, actions=None, enforce_detection=True):
                return []

        classifier = DeepFaceImageClassifier(SharedPipeline("fake-deepface", lambda: FakeDeepFace))
        with pytest.raises(InvalidResponse):
            asyncio.run(classifier.classify(_frame()))


class TestBackendSelection:
    def test_known_backends(self):
        assert isinstance(get_text_classifier("local"), LocalTextClassifier)
        assert isinstance(get_image_classifier("deepface"), DeepFaceImageClassifier)
        assert isinstance(get_image_classifier("REMOTE"), RemoteImageClassifier)
        assert get_image_classifier("remote").label_table is REMOTE_LABELS

    def test_classifiers_are_reused(self):
        assert get_text_classifier("local") is get_text_classifier("local")

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            get_text_classifier("deepface")
