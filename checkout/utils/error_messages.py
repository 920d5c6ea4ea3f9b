"""
Messages utilisateur à partir d'une erreur backend.
- Erreurs de validation (details / fieldErrors) détaillées quand le payload les fournit.
- Sinon, message générique selon le status HTTP.
"""
import re
from typing import Any

from checkout.errors import BackendAPIError, CheckoutError

_STATUS_RE = re.compile(r"\b(\d{3})\b")

def _validation_message(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    err = payload.get("error")
    if not isinstance(err, dict):
        return ""
    details = err.get("details")
    if isinstance(details, list) and details:
        parts = [str(d.get("message") or f"{d.get('field')}: invalid") for d in details if isinstance(d, dict)]
        if parts:
            return "Please fix the following: " + ", ".join(parts)
    if isinstance(details, dict) and isinstance(details.get("fieldErrors"), list):
        parts = [
            f"{fe.get('field')}: {fe.get('errorCode') or 'required'}"
            for fe in details["fieldErrors"]
            if isinstance(fe, dict)
        ]
        if parts:
            return "Missing required fields: " + ", ".join(parts)
    return ""

def get_error_message(error: Exception, context: str = "Operation") -> str:
    status = None
    if isinstance(error, BackendAPIError):
        status = error.status
        if status in (400, 403):
            detailed = _validation_message(error.payload)
            if detailed:
                return detailed
    elif isinstance(error, CheckoutError):
        return error.message
    else:
        match = _STATUS_RE.search(str(error))
        if match:
            status = int(match.group(1))

    if status is None:
        return str(error) or "An unexpected error occurred. Please try again."
    if status == 400:
        return "Invalid information provided. Please check your details and try again."
    if status == 401:
        return "Your session has expired. Please try again."
    if status == 403:
        return "You do not have permission to perform this action."
    if status == 404:
        return f"{context} not found. Please try again."
    if status == 409:
        return "This order already exists. Please check your orders or contact support."
    if status == 422:
        return "Invalid data provided. Please review your information."
    if status == 429:
        return "Too many requests. Please wait a moment and try again."
    if status in (500, 502, 503):
        return "Server error. Please try again in a few moments."
    return f"An error occurred ({status}). Please try again or contact support."
