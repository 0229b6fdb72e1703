import base64
import io
import os
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from emotion_detection.utils.logger import get_logger

logger = get_logger("image_preprocess")

ImageSource = Union[bytes, str, Path, Image.Image, np.ndarray]


def load_image(source: ImageSource) -> Image.Image:
    """Decode a still frame into an RGB PIL image.

    numpy arrays are taken as RGB (H, W, 3) or grayscale (H, W).
    """
    if isinstance(source, Image.Image):
        return source.convert("RGB")
    if isinstance(source, np.ndarray):
        if source.ndim not in (2, 3) or source.size == 0:
            raise ValueError(f"Unsupported image array shape: {source.shape}")
        return Image.fromarray(source.astype(np.uint8)).convert("RGB")
    try:
        if isinstance(source, (bytes, bytearray)):
            if not source:
                raise ValueError("Image data is empty")
            img = Image.open(io.BytesIO(source))
        else:
            img = Image.open(Path(source))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Could not decode image: {e}") from e
    return img.convert("RGB")


def crop_largest_face(img: Image.Image) -> Image.Image:
    """Crop to the largest face found by the OpenCV Haar cascade, if any."""
    import cv2  # lazy import to avoid CV2 at module import time

    cascade_path = os.path.join(cv2.data.haarcascades, "haarcascade_frontalface_default.xml")
    if not os.path.exists(cascade_path):
        logger.warning(f"Haar cascade not found at {cascade_path}; using full frame")
        return img
    face_cascade = cv2.CascadeClassifier(cascade_path)
    gray = cv2.cvtColor(np.asarray(img), cv2.COLOR_RGB2GRAY)
    faces = face_cascade.detectMultiScale(gray, scaleFactor=1.1, minNeighbors=5, minSize=(60, 60))
    if len(faces) == 0:
        return img
    x, y, w, h = sorted(list(faces), key=lambda b: b[2] * b[3], reverse=True)[0]
    return img.crop((int(x), int(y), int(x + w), int(y + h)))


def to_jpeg_base64(img: Image.Image, quality: int = 90) -> str:
    buf = io.BytesIO()
    img.convert("RGB").save(buf, format="JPEG", quality=quality)
    return base64.b64encode(buf.getvalue()).decode("ascii")
