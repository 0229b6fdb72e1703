import asyncio
from typing import Dict, Optional

import numpy as np
from PIL import Image

from emotion_detection.inference.base import (
    EmotionClassifier,
    SharedPipeline,
    build_hf_pipeline,
    pairs_from_pipeline_output,
)
from emotion_detection.inference.labels import IMAGE_LABELS, REMOTE_LABELS
from emotion_detection.inference.normalize import RawClassification
from emotion_detection.inference.remote import call_gateway, image_messages, parse_emotion_payload
from emotion_detection.preprocessing.image_preprocess import to_jpeg_base64
from emotion_detection.utils.config import IMAGE_BACKEND, IMAGE_MODEL_ID, IMAGE_TOP_K, PIPELINE_DEVICE, REMOTE_IMAGE_MODEL
from emotion_detection.utils.errors import InvalidResponse, ModelUnavailable
from emotion_detection.utils.logger import get_logger

logger = get_logger("predict_image")

IMAGE_PIPELINE = SharedPipeline(
    "image-emotion",
    lambda: build_hf_pipeline("image-classification", IMAGE_MODEL_ID, PIPELINE_DEVICE),
    model_id=IMAGE_MODEL_ID,
)


def _load_deepface():
    try:
        from deepface import DeepFace  # lazy import, pulls in TensorFlow
    except ImportError as e:
        raise ModelUnavailable("DeepFace is not installed (pip install deepface)", backend="deepface") from e
    return DeepFace


DEEPFACE_MODULE = SharedPipeline("deepface", _load_deepface, model_id="deepface")


class LocalImageClassifier(EmotionClassifier):
    name = "local"
    label_table = IMAGE_LABELS
    attribution = "Analysis performed using Vision Transformer (ViT) model"

    def __init__(self, pipeline: SharedPipeline = IMAGE_PIPELINE, top_k: int = IMAGE_TOP_K):
        self.pipeline = pipeline
        self.top_k = top_k

    async def classify(self, data: Image.Image) -> RawClassification:
        pipe = await self.pipeline.get()
        try:
            raw = await asyncio.to_thread(pipe, data, top_k=self.top_k)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Image inference failed: {e}")
            raise ModelUnavailable(f"Image inference failed: {e}", backend=self.name) from e
        return pairs_from_pipeline_output(raw)


class DeepFaceImageClassifier(EmotionClassifier):
    """DeepFace emotion head; scores come back as percentages."""

    name = "deepface"
    label_table = IMAGE_LABELS
    attribution = "Analysis performed using DeepFace emotion model"

    def __init__(self, module: SharedPipeline = DEEPFACE_MODULE):
        self.module = module

    async def classify(self, data: Image.Image) -> RawClassification:
        deepface = await self.module.get()
        # DeepFace expects BGR arrays like cv2.imread returns
        bgr = np.asarray(data.convert("RGB"))[..., ::-1].copy()
        try:
            res = await asyncio.to_thread(deepface.analyze, bgr, actions=["emotion"], enforce_detection=False)
        except Exception as e:  # noqa: BLE001
            logger.error(f"DeepFace analysis failed: {e}")
            raise ModelUnavailable(f"DeepFace analysis failed: {e}", backend=self.name) from e
        # DeepFace returns dict or list; take the first face
        if isinstance(res, list):
            res = res[0] if res else {}
        raw = res.get("emotion") if isinstance(res, dict) else None
        if not isinstance(raw, dict):
            raise InvalidResponse("DeepFace result has no emotion scores")
        try:
            return [(str(k), float(v)) for k, v in raw.items()]
        except (TypeError, ValueError) as e:
            raise InvalidResponse(f"Non-numeric DeepFace score: {raw!r}") from e


class RemoteImageClassifier(EmotionClassifier):
    name = "remote"
    label_table = REMOTE_LABELS

    def __init__(self, model: str = REMOTE_IMAGE_MODEL):
        self.model = model
        self.attribution = f"Analysis performed using {model}"

    async def classify(self, data: Image.Image) -> RawClassification:
        messages = image_messages(to_jpeg_base64(data))
        content = await asyncio.to_thread(call_gateway, messages, self.model)
        return parse_emotion_payload(content)


_CLASSIFIERS: Dict[str, EmotionClassifier] = {}
_FACTORIES = {
    "local": LocalImageClassifier,
    "deepface": DeepFaceImageClassifier,
    "remote": RemoteImageClassifier,
}


def get_image_classifier(backend: Optional[str] = None) -> EmotionClassifier:
    backend = (backend or IMAGE_BACKEND).lower()
    if backend not in _FACTORIES:
        raise ValueError(f"Unknown image backend '{backend}'. Use one of {sorted(_FACTORIES)}")
    if backend not in _CLASSIFIERS:
        _CLASSIFIERS[backend] = _FACTORIES[backend]()
    return _CLASSIFIERS[backend]


async def classify_image(image: Image.Image, backend: Optional[str] = None) -> RawClassification:
    return await get_image_classifier(backend).classify(image)
