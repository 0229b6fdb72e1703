"""
Analysis history.

Records are written as they are produced: the ``EmotionData`` fields unchanged,
plus the analysis type and, for text, the input that was analyzed.
"""
import abc
import threading
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from emotion_detection.inference.schemas import AnalysisRecord, AnalysisType, EmotionData
from emotion_detection.utils.config import HISTORY_PATH
from emotion_detection.utils.logger import get_logger

logger = get_logger("history")


class HistoryStore(abc.ABC):
    @abc.abstractmethod
    def insert(self, record: AnalysisRecord) -> AnalysisRecord:
        ...

    @abc.abstractmethod
    def select(self, limit: Optional[int] = None, analysis_type: Optional[str] = None) -> List[AnalysisRecord]:
        """Newest first."""

    @abc.abstractmethod
    def delete(self, record_id: str) -> bool:
        ...


def _filter(records: List[AnalysisRecord], limit: Optional[int], analysis_type: Optional[str]) -> List[AnalysisRecord]:
    out = sorted(records, key=lambda r: r.created_at, reverse=True)
    if analysis_type:
        out = [r for r in out if r.analysis_type == analysis_type]
    if limit is not None:
        out = out[: max(0, limit)]
    return out


class InMemoryHistoryStore(HistoryStore):
    def __init__(self):
        self._records: List[AnalysisRecord] = []
        self._lock = threading.Lock()

    def insert(self, record: AnalysisRecord) -> AnalysisRecord:
        with self._lock:
            self._records.append(record)
        return record

    def select(self, limit: Optional[int] = None, analysis_type: Optional[str] = None) -> List[AnalysisRecord]:
        with self._lock:
            return _filter(list(self._records), limit, analysis_type)

    def delete(self, record_id: str) -> bool:
        with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.id != record_id]
            return len(self._records) < before


class JsonlHistoryStore(HistoryStore):
    """One JSON object per line; deletes rewrite the file."""

    def __init__(self, path: Path = HISTORY_PATH):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> List[AnalysisRecord]:
        if not self.path.exists():
            return []
        records = []
        with open(self.path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(AnalysisRecord.model_validate_json(line))
                except ValidationError as e:
                    logger.warning(f"Skipping corrupt history line {lineno} in {self.path}: {e}")
        return records

    def insert(self, record: AnalysisRecord) -> AnalysisRecord:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(record.model_dump_json() + "\n")
        return record

    def select(self, limit: Optional[int] = None, analysis_type: Optional[str] = None) -> List[AnalysisRecord]:
        with self._lock:
            return _filter(self._read(), limit, analysis_type)

    def delete(self, record_id: str) -> bool:
        with self._lock:
            records = self._read()
            kept = [r for r in records if r.id != record_id]
            if len(kept) == len(records):
                return False
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                for r in kept:
                    f.write(r.model_dump_json() + "\n")
            tmp.replace(self.path)
            return True


def build_record(analysis_type: AnalysisType, data: EmotionData, input_text: Optional[str] = None) -> AnalysisRecord:
    return AnalysisRecord(
        analysis_type=analysis_type,
        input_text=input_text or None,
        dominant_emotion=data.dominant_emotion,
        confidence=data.confidence,
        emotions=data.emotions,
        mixed_emotions=data.mixed_emotions,
        summary=data.analysis_summary,
    )


def save_analysis(
    store: HistoryStore,
    analysis_type: AnalysisType,
    data: EmotionData,
    input_text: Optional[str] = None,
) -> Optional[AnalysisRecord]:
    """Persist a finished analysis; failures are logged, not raised."""
    try:
        return store.insert(build_record(analysis_type, data, input_text))
    except Exception as e:  # noqa: BLE001
        logger.error(f"Failed to save analysis: {e}")
        return None
