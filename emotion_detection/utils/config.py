from pathlib import Path
import os

# Centralized config for paths, backends and thresholds

# Allow overriding base/data/models directories via environment variables
BASE_DIR = Path(os.getenv("EMO_BASE_DIR", Path(__file__).resolve().parents[1]))
DATA_DIR = Path(os.getenv("EMO_DATA_DIR", BASE_DIR / "data"))
MODELS_DIR = Path(os.getenv("EMO_MODELS_DIR", BASE_DIR / "models"))
LOG_DIR = Path(os.getenv("EMO_LOG_DIR", BASE_DIR / "logs"))

# HuggingFace model configuration for the local pipelines
TEXT_MODEL_ID = os.getenv("EMO_TEXT_MODEL_ID", "j-hartmann/emotion-english-distilroberta-base")
IMAGE_MODEL_ID = os.getenv("EMO_IMAGE_MODEL_ID", "trpakov/vit-face-expression")
IMAGE_TOP_K = int(os.getenv("EMO_IMAGE_TOP_K", "7"))
# transformers device index: -1 is CPU, 0.. selects a CUDA device
PIPELINE_DEVICE = int(os.getenv("EMO_PIPELINE_DEVICE", "-1"))

# Backend per modality: "local" | "remote" (text), "local" | "remote" | "deepface" (image)
TEXT_BACKEND = os.getenv("EMO_TEXT_BACKEND", "local")
IMAGE_BACKEND = os.getenv("EMO_IMAGE_BACKEND", "local")

# OpenAI-compatible chat completions gateway used by the remote backend
GATEWAY_URL = os.getenv("EMO_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1/chat/completions")
GATEWAY_API_KEY = os.getenv("EMO_GATEWAY_API_KEY", "")
REMOTE_TEXT_MODEL = os.getenv("EMO_REMOTE_TEXT_MODEL", "google/gemini-2.5-flash")
REMOTE_IMAGE_MODEL = os.getenv("EMO_REMOTE_IMAGE_MODEL", "google/gemini-2.5-pro")
REMOTE_TEMPERATURE = float(os.getenv("EMO_REMOTE_TEMPERATURE", "0.2"))
# (connect, read) seconds passed to requests
REMOTE_TIMEOUT = (
    float(os.getenv("EMO_REMOTE_CONNECT_TIMEOUT", "5")),
    float(os.getenv("EMO_REMOTE_READ_TIMEOUT", "120")),
)

# Crop camera frames to the largest detected face before classification
FACE_CROP = os.getenv("EMO_FACE_CROP", "0") in {"1", "true", "True"}

# Analysis history (JSON lines file)
HISTORY_PATH = Path(os.getenv("EMO_HISTORY_PATH", DATA_DIR / "history.jsonl"))

# Aggregation thresholds
MIXED_EMOTION_THRESHOLD = 0.15
INTENSITY_MEDIUM = 0.34
INTENSITY_HIGH = 0.67
