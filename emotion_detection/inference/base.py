import abc
import asyncio
import concurrent.futures
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from emotion_detection.inference.labels import LabelTable
from emotion_detection.inference.normalize import RawClassification
from emotion_detection.utils.errors import InvalidResponse, ModelUnavailable
from emotion_detection.utils.logger import get_logger

logger = get_logger("inference")


class SharedPipeline:
    """Lazily loads a classifier handle once per process.

    The first caller starts the load on a worker thread and publishes a
    ``concurrent.futures.Future``; every later caller, from any thread or
    event loop, awaits that same future. A failed load is forgotten so a
    later request can try again.
    """

    def __init__(self, name: str, factory: Callable[[], Any], model_id: Optional[str] = None):
        self.name = name
        self.model_id = model_id
        self._factory = factory
        self._lock = threading.Lock()
        self._handle: Any = None
        self._pending: Optional[concurrent.futures.Future] = None
        self.load_seconds: Optional[float] = None

    @property
    def loaded(self) -> bool:
        return self._handle is not None

    def _load(self, future: concurrent.futures.Future) -> None:
        if not future.set_running_or_notify_cancel():
            return
        t0 = time.perf_counter()
        try:
            handle = self._factory()
        except BaseException as e:
            with self._lock:
                if self._pending is future:
                    self._pending = None
            future.set_exception(e)
            return
        self.load_seconds = time.perf_counter() - t0
        logger.info(f"Loaded {self.name} in {self.load_seconds * 1000:.1f} ms")
        with self._lock:
            self._handle = handle
            if self._pending is future:
                self._pending = None
        future.set_result(handle)

    def _start(self) -> concurrent.futures.Future:
        with self._lock:
            if self._handle is not None:
                done: concurrent.futures.Future = concurrent.futures.Future()
                done.set_result(self._handle)
                return done
            if self._pending is None:
                self._pending = concurrent.futures.Future()
                threading.Thread(target=self._load, args=(self._pending,), name=f"load-{self.name}", daemon=True).start()
            return self._pending

    async def get(self) -> Any:
        if self._handle is not None:
            return self._handle
        pending = self._start()
        try:
            # a cancelled caller leaves the shared load running
            return await asyncio.shield(asyncio.wrap_future(pending))
        except ModelUnavailable:
            raise
        except Exception as e:
            logger.error(f"Failed to load {self.name}: {e}")
            raise ModelUnavailable(f"Failed to load {self.name}: {e}", backend=self.name) from e

    def status(self) -> Dict[str, Any]:
        pending = self._pending
        return {
            "model": self.model_id,
            "loaded": self.loaded,
            "loading": pending is not None and not pending.done(),
            "load_time_sec": float(self.load_seconds) if self.load_seconds is not None else None,
        }


class EmotionClassifier(abc.ABC):
    """A backend that turns one input into raw label/score pairs."""

    name: str = "classifier"
    label_table: LabelTable
    attribution: str = "Analysis performed using an emotion classifier"

    @abc.abstractmethod
    async def classify(self, data: Any) -> RawClassification:
        ...


def pairs_from_pipeline_output(items: Any) -> RawClassification:
    """Flatten transformers pipeline output into (label, score) pairs.

    Accepts ``[{'label':..., 'score':...}, ...]`` or the nested
    ``[[{...}, ...]]`` form some pipeline versions return for one input.
    """
    if isinstance(items, list) and items and isinstance(items[0], list):
        items = items[0]
    if not isinstance(items, list):
        raise InvalidResponse(f"Expected a list of label/score entries, got {type(items).__name__}")
    pairs: List = []
    for it in items:
        if not isinstance(it, dict) or "label" not in it or "score" not in it:
            raise InvalidResponse(f"Malformed classifier entry: {it!r}")
        try:
            pairs.append((str(it["label"]), float(it["score"])))
        except (TypeError, ValueError) as e:
            raise InvalidResponse(f"Non-numeric score in entry: {it!r}") from e
    return pairs


def build_hf_pipeline(task: str, model_id: str, device: int, **kwargs) -> Any:
    """Build a transformers pipeline, retrying on CPU if the configured device fails."""
    from transformers import pipeline  # lazy import to keep startup light

    try:
        return pipeline(task, model=model_id, device=device, **kwargs)
    except Exception as e:  # noqa: BLE001
        if device == -1:
            raise
        logger.warning(f"Failed to load {model_id} on device {device}, retrying on CPU: {e}")
        return pipeline(task, model=model_id, device=-1, **kwargs)
