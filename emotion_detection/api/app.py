from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import List, Optional
import requests

from emotion_detection.history.store import HistoryStore, JsonlHistoryStore, save_analysis
from emotion_detection.inference.predict_emotion import analyze_combined, analyze_image, analyze_text
from emotion_detection.inference.predict_image import DEEPFACE_MODULE, IMAGE_PIPELINE
from emotion_detection.inference.predict_text import TEXT_PIPELINE
from emotion_detection.inference.schemas import AnalysisRecord, CombinedResult, EmotionData
from emotion_detection.utils.config import GATEWAY_API_KEY, IMAGE_BACKEND, TEXT_BACKEND
from emotion_detection.utils.errors import InvalidResponse, ModelUnavailable
from emotion_detection.utils.logger import get_logger

logger = get_logger("api")

app = FastAPI(title="Emotion Detection API")

# Allowed MIME types and size limits (bytes)
IMAGE_MIME_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/webp"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5 MB
MAX_TEXT_BYTES = 32 * 1024  # 32 KB

_HISTORY: Optional[HistoryStore] = None


def get_history_store() -> HistoryStore:
    global _HISTORY
    if _HISTORY is None:
        _HISTORY = JsonlHistoryStore()
    return _HISTORY


class TextRequest(BaseModel):
    text: str
    backend: Optional[str] = None
    save: bool = False


@app.exception_handler(ModelUnavailable)
async def _model_unavailable(_, exc: ModelUnavailable):
    return JSONResponse(status_code=503, content={"error": exc.message, "details": exc.details})


@app.exception_handler(InvalidResponse)
async def _invalid_response(_, exc: InvalidResponse):
    return JSONResponse(status_code=502, content={"error": exc.message, "details": exc.details})


def _check_text(text: Optional[str]) -> str:
    if text is None or not text.strip():
        raise HTTPException(status_code=422, detail="Text must be a non-empty string.")
    if len(text.encode("utf-8", errors="ignore")) > MAX_TEXT_BYTES:
        raise HTTPException(status_code=413, detail=f"Text too long. Limit: {MAX_TEXT_BYTES} bytes")
    return text.strip()


async def _read_image_upload(upload: UploadFile) -> bytes:
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if content_type not in IMAGE_MIME_TYPES:
        raise HTTPException(status_code=415, detail=f"Unsupported media type: {content_type}. Allowed: {sorted(IMAGE_MIME_TYPES)}")
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    if len(data) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=413, detail=f"File too large. Limit: {MAX_IMAGE_BYTES} bytes")
    return data


def _download_image(url: str) -> bytes:
    url = url.strip()
    if not (url.startswith("http://") or url.startswith("https://")):
        raise HTTPException(status_code=400, detail="URL must start with http:// or https://")
    try:
        with requests.get(url, stream=True, timeout=(3, 10)) as resp:
            if resp.status_code != 200:
                raise HTTPException(status_code=400, detail=f"Failed to fetch URL: HTTP {resp.status_code}")
            content_type = (resp.headers.get("content-type", "").split(";")[0].strip().lower())
            if content_type not in IMAGE_MIME_TYPES:
                raise HTTPException(status_code=415, detail=f"Unsupported media type from URL: {content_type}. Allowed: {sorted(IMAGE_MIME_TYPES)}")
            chunks = []
            total = 0
            for chunk in resp.iter_content(chunk_size=1024 * 1024):  # 1 MB chunks
                if not chunk:
                    continue
                total += len(chunk)
                if total > MAX_IMAGE_BYTES:
                    raise HTTPException(status_code=413, detail=f"Remote file too large during download. Limit: {MAX_IMAGE_BYTES} bytes")
                chunks.append(chunk)
    except requests.RequestException as e:
        raise HTTPException(status_code=400, detail=f"Failed to fetch URL: {e}")
    if not chunks:
        raise HTTPException(status_code=400, detail="Remote file is empty.")
    return b"".join(chunks)


@app.post("/analyze/text", response_model=EmotionData)
async def predict_text(req: TextRequest, store: HistoryStore = Depends(get_history_store)):
    text = _check_text(req.text)
    try:
        result = await analyze_text(text, req.backend)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if req.save:
        save_analysis(store, "text", result, text)
    return result


@app.post("/analyze/image", response_model=EmotionData)
async def predict_image(
    image_file: Optional[UploadFile] = File(None),
    image_url: Optional[str] = Form(None),
    backend: Optional[str] = Form(None),
    save: bool = Form(False),
    store: HistoryStore = Depends(get_history_store),
):
    # Prefer uploaded files over URLs if both provided
    if image_file is not None:
        data = await _read_image_upload(image_file)
    elif image_url:
        data = await run_in_threadpool(_download_image, image_url)
    else:
        raise HTTPException(status_code=422, detail="Provide image_file or image_url.")
    try:
        result = await analyze_image(data, backend)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if save:
        save_analysis(store, "video", result)
    return result


@app.post("/analyze/combined", response_model=CombinedResult)
async def predict_combined(
    text: Optional[str] = Form(None),
    image_file: Optional[UploadFile] = File(None),
    save: bool = Form(False),
    store: HistoryStore = Depends(get_history_store),
):
    text_value = _check_text(text) if text is not None and text.strip() else None
    image_data = await _read_image_upload(image_file) if image_file is not None else None
    if text_value is None and image_data is None:
        raise HTTPException(status_code=422, detail="Provide at least one modality: text or image_file")

    result = await analyze_combined(text_value, image_data)
    if save:
        if result.text is not None:
            save_analysis(store, "combined", result.text, text_value)
        if result.image is not None:
            save_analysis(store, "combined", result.image)
    return result


@app.get("/history", response_model=List[AnalysisRecord])
async def list_history(
    limit: Optional[int] = None,
    analysis_type: Optional[str] = None,
    store: HistoryStore = Depends(get_history_store),
):
    return store.select(limit=limit, analysis_type=analysis_type)


@app.delete("/history/{record_id}")
async def delete_history(record_id: str, store: HistoryStore = Depends(get_history_store)):
    if not store.delete(record_id):
        raise HTTPException(status_code=404, detail="Record not found.")
    return {"deleted": record_id}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready():
    checks = {
        "text_backend": TEXT_BACKEND,
        "image_backend": IMAGE_BACKEND,
        "text_pipeline": TEXT_PIPELINE.status(),
        "image_pipeline": IMAGE_PIPELINE.status(),
        "deepface": DEEPFACE_MODULE.status(),
        "gateway_configured": bool(GATEWAY_API_KEY),
    }
    return {"status": "ready", "checks": checks}
