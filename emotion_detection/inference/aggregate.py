from dataclasses import dataclass
from typing import Dict, List

from emotion_detection.inference.labels import DEFAULT_EMOTION
from emotion_detection.inference.schemas import Emotion, EmotionData
from emotion_detection.utils.config import INTENSITY_HIGH, INTENSITY_MEDIUM, MIXED_EMOTION_THRESHOLD


@dataclass(frozen=True)
class SummaryStyle:
    """Wording of the one-sentence summary for a modality."""

    lead_in: str
    qualifier: str
    connector: str


TEXT_SUMMARY = SummaryStyle(
    lead_in="The text primarily expresses",
    qualifier=" emotions",
    connector="with hints of",
)
IMAGE_SUMMARY = SummaryStyle(
    lead_in="Facial expression analysis detected",
    qualifier=" as the primary emotion",
    connector="with additional expressions of",
)


def intensity_for(score: float) -> str:
    if score >= INTENSITY_HIGH:
        return "high"
    if score >= INTENSITY_MEDIUM:
        return "medium"
    return "low"


def summarize(style: SummaryStyle, dominant: str, mixed: List[str], attribution: str) -> str:
    sentence = f"{style.lead_in} {dominant.lower()}{style.qualifier}"
    rest = [m for m in mixed if m != dominant]
    if len(mixed) > 1 and rest:
        sentence += f", {style.connector} {', '.join(rest).lower()}"
    return f"{sentence}. {attribution}."


def aggregate(vector: Dict[str, float], style: SummaryStyle, attribution: str) -> EmotionData:
    """Turn a normalized vector into the display result.

    ``vector`` must iterate in canonical category order; ``sorted`` is stable,
    so equal scores keep that order.
    """
    entries = [Emotion(name=name, score=score, intensity=intensity_for(score)) for name, score in vector.items()]
    entries = sorted(entries, key=lambda e: e.score, reverse=True)

    if not entries or entries[0].score <= 0.0:
        dominant = DEFAULT_EMOTION
        confidence = 0.0
    else:
        dominant = entries[0].name
        confidence = entries[0].score
    mixed = [e.name for e in entries if e.score > MIXED_EMOTION_THRESHOLD]

    return EmotionData(
        emotions=entries,
        dominant_emotion=dominant,
        mixed_emotions=mixed,
        confidence=confidence,
        analysis_summary=summarize(style, dominant, mixed, attribution),
    )
