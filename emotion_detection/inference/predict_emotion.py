import asyncio
from typing import Dict, Optional

from emotion_detection.inference.aggregate import IMAGE_SUMMARY, TEXT_SUMMARY, aggregate
from emotion_detection.inference.normalize import normalize_scores
from emotion_detection.inference.predict_image import get_image_classifier
from emotion_detection.inference.predict_text import get_text_classifier
from emotion_detection.inference.schemas import CombinedResult, EmotionData
from emotion_detection.preprocessing.image_preprocess import ImageSource, crop_largest_face, load_image
from emotion_detection.utils.config import FACE_CROP
from emotion_detection.utils.logger import get_logger

logger = get_logger("inference")


async def analyze_text(text: str, backend: Optional[str] = None) -> EmotionData:
    classifier = get_text_classifier(backend)
    raw = await classifier.classify(text)
    vector = normalize_scores(raw, classifier.label_table)
    result = aggregate(vector, TEXT_SUMMARY, classifier.attribution)
    logger.info(f"Text [{classifier.name}]: {result.dominant_emotion} | confidence={result.confidence:.3f}")
    return result


async def analyze_image(image: ImageSource, backend: Optional[str] = None, face_crop: bool = FACE_CROP) -> EmotionData:
    classifier = get_image_classifier(backend)
    frame = load_image(image)
    if face_crop:
        frame = await asyncio.to_thread(crop_largest_face, frame)
    raw = await classifier.classify(frame)
    vector = normalize_scores(raw, classifier.label_table)
    result = aggregate(vector, IMAGE_SUMMARY, classifier.attribution)
    logger.info(f"Image [{classifier.name}]: {result.dominant_emotion} | confidence={result.confidence:.3f}")
    return result


async def analyze_combined(
    text: Optional[str],
    image: Optional[ImageSource],
    text_backend: Optional[str] = None,
    image_backend: Optional[str] = None,
) -> CombinedResult:
    """Run text and image analysis side by side.

    A failure in one modality is reported in ``errors`` and does not affect
    the other.
    """
    jobs = {}
    if text is not None and text.strip():
        jobs["text"] = analyze_text(text.strip(), text_backend)
    if image is not None:
        jobs["image"] = analyze_image(image, image_backend)
    if not jobs:
        raise ValueError("Provide at least one modality: text or image")

    outcomes = await asyncio.gather(*jobs.values(), return_exceptions=True)
    results: Dict[str, EmotionData] = {}
    errors: Dict[str, str] = {}
    for modality, outcome in zip(jobs.keys(), outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error(f"{modality.capitalize()} analysis failed: {outcome}")
            errors[modality] = str(outcome)
        else:
            results[modality] = outcome
    return CombinedResult(text=results.get("text"), image=results.get("image"), errors=errors)
