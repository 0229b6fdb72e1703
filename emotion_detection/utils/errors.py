from typing import Any, Dict, Optional

# Classifier failures. Both are fatal for the request that hit them;
# the caller decides whether to re-issue it.


class EmotionDetectionError(Exception):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ModelUnavailable(EmotionDetectionError):
    """Backend classifier failed to initialize or could not be reached."""

    def __init__(self, message: str, backend: str = "unknown", status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.backend = backend
        self.status_code = status_code
        self.details["backend"] = backend
        if status_code is not None:
            self.details["status_code"] = status_code


class InvalidResponse(EmotionDetectionError):
    """Backend replied with something that is not a label/score list."""
