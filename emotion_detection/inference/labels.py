from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

# Canonical emotion categories. Order matters: it is the tie-break order
# used when two categories end up with the same score.
LOCAL_CATEGORIES: Tuple[str, ...] = ("Happy", "Sad", "Angry", "Surprised", "Disgusted", "Neutral")
REMOTE_CATEGORIES: Tuple[str, ...] = (
    "Happy", "Sad", "Angry", "Surprised", "Fearful", "Disgusted", "Neutral", "Contempt",
)

DEFAULT_EMOTION = "Neutral"


@dataclass(frozen=True)
class LabelTable:
    """Static, versioned lookup from backend labels to canonical categories.

    Keys are lowercase. Every table also accepts the lowercased names of its
    own categories, so a vector that was already normalized can be fed back in.
    """

    name: str
    version: str
    categories: Tuple[str, ...]
    mapping: Dict[str, str] = field(default_factory=dict)

    def lookup(self, label: str) -> Optional[str]:
        return self.mapping.get(str(label).strip().lower())


def _table(name: str, version: str, categories: Tuple[str, ...], backend_labels: Dict[str, str]) -> LabelTable:
    mapping = {c.lower(): c for c in categories}
    for raw, category in backend_labels.items():
        if category not in categories:
            raise ValueError(f"{name}: '{raw}' maps to unknown category '{category}'")
        mapping[raw.lower()] = category
    return LabelTable(name=name, version=version, categories=categories, mapping=mapping)


# j-hartmann/emotion-english-distilroberta-base; "fear" has no local category
TEXT_LABELS = _table("distilroberta-emotion", "1", LOCAL_CATEGORIES, {
    "joy": "Happy",
    "sadness": "Sad",
    "anger": "Angry",
    "surprise": "Surprised",
    "disgust": "Disgusted",
    "neutral": "Neutral",
})

# trpakov/vit-face-expression and DeepFace share the FER-2013 vocabulary
IMAGE_LABELS = _table("fer2013", "1", LOCAL_CATEGORIES, {
    "happy": "Happy",
    "sad": "Sad",
    "angry": "Angry",
    "surprise": "Surprised",
    "disgust": "Disgusted",
    "neutral": "Neutral",
})

# The gateway is prompted to answer with the canonical names directly
REMOTE_LABELS = _table("llm-gateway", "1", REMOTE_CATEGORIES, {})
