import asyncio
from typing import Dict, Optional

from emotion_detection.inference.base import (
    EmotionClassifier,
    SharedPipeline,
    build_hf_pipeline,
    pairs_from_pipeline_output,
)
from emotion_detection.inference.labels import REMOTE_LABELS, TEXT_LABELS
from emotion_detection.inference.normalize import RawClassification
from emotion_detection.inference.remote import call_gateway, parse_emotion_payload, text_messages
from emotion_detection.utils.config import PIPELINE_DEVICE, REMOTE_TEXT_MODEL, TEXT_BACKEND, TEXT_MODEL_ID
from emotion_detection.utils.errors import ModelUnavailable
from emotion_detection.utils.logger import get_logger

logger = get_logger("predict_text")

TEXT_PIPELINE = SharedPipeline(
    "text-emotion",
    lambda: build_hf_pipeline("text-classification", TEXT_MODEL_ID, PIPELINE_DEVICE),
    model_id=TEXT_MODEL_ID,
)


class LocalTextClassifier(EmotionClassifier):
    name = "local"
    label_table = TEXT_LABELS
    attribution = "Analysis performed using DistilRoBERTa emotion model"

    def __init__(self, pipeline: SharedPipeline = TEXT_PIPELINE):
        self.pipeline = pipeline

    async def classify(self, data: str) -> RawClassification:
        pipe = await self.pipeline.get()
        try:
            raw = await asyncio.to_thread(pipe, data, top_k=None, truncation=True)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Text inference failed: {e}")
            raise ModelUnavailable(f"Text inference failed: {e}", backend=self.name) from e
        return pairs_from_pipeline_output(raw)


class RemoteTextClassifier(EmotionClassifier):
    name = "remote"
    label_table = REMOTE_LABELS

    def __init__(self, model: str = REMOTE_TEXT_MODEL):
        self.model = model
        self.attribution = f"Analysis performed using {model}"

    async def classify(self, data: str) -> RawClassification:
        content = await asyncio.to_thread(call_gateway, text_messages(data), self.model)
        return parse_emotion_payload(content)


_CLASSIFIERS: Dict[str, EmotionClassifier] = {}
_FACTORIES = {
    "local": LocalTextClassifier,
    "remote": RemoteTextClassifier,
}


def get_text_classifier(backend: Optional[str] = None) -> EmotionClassifier:
    backend = (backend or TEXT_BACKEND).lower()
    if backend not in _FACTORIES:
        raise ValueError(f"Unknown text backend '{backend}'. Use one of {sorted(_FACTORIES)}")
    if backend not in _CLASSIFIERS:
        _CLASSIFIERS[backend] = _FACTORIES[backend]()
    return _CLASSIFIERS[backend]


async def classify_text(text: str, backend: Optional[str] = None) -> RawClassification:
    return await get_text_classifier(backend).classify(text)
