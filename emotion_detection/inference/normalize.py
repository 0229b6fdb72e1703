import math
from typing import Dict, Iterable, List, Tuple

from emotion_detection.inference.labels import LabelTable
from emotion_detection.utils.logger import get_logger

logger = get_logger("normalize")

# Raw classifier output: unordered (label, score) pairs in backend vocabulary
RawClassification = List[Tuple[str, float]]


def _clean_score(score) -> float:
    try:
        value = float(score)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0.0:
        return 0.0
    return value


def normalize_scores(raw: Iterable[Tuple[str, float]], table: LabelTable) -> Dict[str, float]:
    """Map raw label/score pairs onto the table's categories and rescale to unit sum.

    Unknown labels are dropped. When two raw labels map to the same category
    the later one wins. With zero total mass every category stays at 0.
    The returned dict follows ``table.categories`` order.
    """
    vector = {c: 0.0 for c in table.categories}
    for label, score in raw:
        category = table.lookup(label)
        if category is None:
            logger.debug(f"Dropping unmapped label '{label}' for table {table.name}")
            continue
        vector[category] = _clean_score(score)

    total = sum(vector.values())
    if total > 0:
        vector = {c: s / total for c, s in vector.items()}
    return vector
