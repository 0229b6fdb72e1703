"""
Client for the OpenAI-compatible chat completions gateway.

The model is prompted to answer with a JSON object whose ``emotions`` list
holds ``{"name": ..., "score": ...}`` entries using the canonical category
names. Only that list is used; the reply's own summary and confidence are
ignored and recomputed locally.
"""
import json
import re
from typing import Any, Dict, List

import requests

from emotion_detection.inference.normalize import RawClassification
from emotion_detection.utils.config import GATEWAY_API_KEY, GATEWAY_URL, REMOTE_TEMPERATURE, REMOTE_TIMEOUT
from emotion_detection.utils.errors import InvalidResponse, ModelUnavailable
from emotion_detection.utils.logger import get_logger

logger = get_logger("remote")

_RESPONSE_FORMAT = """Return ONLY a valid JSON object with this exact structure:
{
  "emotions": [
    {"name": "Happy", "score": 0.0},
    {"name": "Sad", "score": 0.0},
    {"name": "Angry", "score": 0.0},
    {"name": "Surprised", "score": 0.0},
    {"name": "Fearful", "score": 0.0},
    {"name": "Disgusted", "score": 0.0},
    {"name": "Neutral", "score": 0.0},
    {"name": "Contempt", "score": 0.0}
  ]
}

Rules:
- Scores must be between 0 and 1, totaling approximately 1.0
- Use exactly the emotion names listed above"""

TEXT_SYSTEM_PROMPT = f"""You are an expert emotion detection AI. Analyze the provided text and detect emotions with high accuracy.

Analyze the sentiment, tone, and emotional content of the text.

{_RESPONSE_FORMAT}"""

IMAGE_SYSTEM_PROMPT = f"""You are a facial emotion recognition expert trained in the Facial Action Coding System (FACS). Analyze the provided image with attention to facial micro-expressions.

Look at the eyes (openness, eyebrow position), the mouth (lip corners, tension, openness) and the rest of the face (forehead lines, nose wrinkles, cheek raising, asymmetric lip raise for contempt). Base the scores on facial markers actually visible in the image.

{_RESPONSE_FORMAT}"""

IMAGE_USER_PROMPT = (
    "Carefully analyze the facial expression in this image. Identify specific facial muscle "
    "movements and micro-expressions to determine the emotions present."
)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


def text_messages(text: str) -> List[Dict[str, Any]]:
    return [
        {"role": "system", "content": TEXT_SYSTEM_PROMPT},
        {"role": "user", "content": f'Analyze the emotions in this text: "{text}"'},
    ]


def image_messages(image_b64: str) -> List[Dict[str, Any]]:
    return [
        {"role": "system", "content": IMAGE_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": IMAGE_USER_PROMPT},
                {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"}},
            ],
        },
    ]


def call_gateway(messages: List[Dict[str, Any]], model: str) -> str:
    """POST a chat completion and return the assistant message content."""
    if not GATEWAY_API_KEY:
        raise ModelUnavailable("Gateway API key is not configured (EMO_GATEWAY_API_KEY).", backend="remote")

    logger.info(f"Requesting emotion analysis from {model}")
    try:
        resp = requests.post(
            GATEWAY_URL,
            headers={
                "Authorization": f"Bearer {GATEWAY_API_KEY}",
                "Content-Type": "application/json",
            },
            json={"model": model, "messages": messages, "temperature": REMOTE_TEMPERATURE},
            timeout=REMOTE_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.error(f"Gateway request failed: {e}")
        raise ModelUnavailable(f"Gateway unreachable: {e}", backend="remote") from e

    if resp.status_code == 429:
        raise ModelUnavailable("Rate limit exceeded. Please try again later.", backend="remote", status_code=429)
    if resp.status_code == 402:
        raise ModelUnavailable("Payment required. Please add credits.", backend="remote", status_code=402)
    if resp.status_code >= 300:
        logger.error(f"Gateway error: {resp.status_code} {resp.text[:500]}")
        raise ModelUnavailable(f"Gateway error: {resp.status_code}", backend="remote", status_code=resp.status_code)

    try:
        data = resp.json()
    except ValueError as e:
        raise InvalidResponse("Gateway reply is not JSON") from e
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if not content or not isinstance(content, str):
        raise InvalidResponse("No response content from gateway")
    return content


def parse_emotion_payload(content: str) -> RawClassification:
    """Extract the ``emotions`` list from a model reply as (name, score) pairs."""
    match = _JSON_BLOCK.search(content)
    if not match:
        logger.warning(f"No JSON object in gateway reply: {content[:200]!r}")
        raise InvalidResponse("Invalid response format")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise InvalidResponse(f"Could not decode gateway JSON: {e}") from e

    emotions = payload.get("emotions") if isinstance(payload, dict) else None
    if not isinstance(emotions, list):
        raise InvalidResponse("Gateway JSON has no 'emotions' list")

    pairs: RawClassification = []
    for item in emotions:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise InvalidResponse(f"Malformed emotion entry: {item!r}")
        score = item.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise InvalidResponse(f"Non-numeric score for {item['name']}: {score!r}")
        pairs.append((item["name"], float(score)))
    return pairs
