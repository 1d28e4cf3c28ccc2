"""Small HTTP-related constants shared across hfserverless.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

DEFAULT_API_URL = "https://api-inference.huggingface.co/models/"
DEFAULT_MODELS_URL = "https://huggingface.co/api/models"

# The serverless API answers 503 while a cold model is being loaded.
MODEL_LOADING_STATUS = 503

AUTHORIZATION_HEADER = "Authorization"
CONTENT_TYPE_HEADER = "Content-Type"
USE_CACHE_HEADER = "x-use-cache"
WAIT_FOR_MODEL_HEADER = "x-wait-for-model"

JSON_CONTENT_TYPE = "application/json"

# Longest body excerpt copied into error messages.
ERROR_BODY_EXCERPT = 300
