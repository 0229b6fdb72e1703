from datetime import datetime, timezone
from typing import Dict, Literal, Optional, Tuple
import uuid

from pydantic import BaseModel, ConfigDict, Field

Intensity = Literal["low", "medium", "high"]
AnalysisType = Literal["text", "video", "combined"]


class Emotion(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    score: float
    intensity: Intensity


class EmotionData(BaseModel):
    """Aggregated result handed to presentation and persistence as-is."""

    model_config = ConfigDict(frozen=True)

    emotions: Tuple[Emotion, ...]
    dominant_emotion: str
    mixed_emotions: Tuple[str, ...]
    confidence: float
    analysis_summary: str


class CombinedResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: Optional[EmotionData] = None
    image: Optional[EmotionData] = None
    errors: Dict[str, str] = Field(default_factory=dict)


class AnalysisRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    analysis_type: AnalysisType
    input_text: Optional[str] = None
    dominant_emotion: str
    confidence: float
    emotions: Tuple[Emotion, ...]
    mixed_emotions: Tuple[str, ...]
    summary: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
