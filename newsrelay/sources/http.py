"""JSON GET helper for source APIs, with failure classification.

Source fetches are never retried inside a cycle; the classification only
decides whether the adapter moves on to its next batch or gives up on the
source for this cycle.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

QUOTA_STATUS_CODES = (402, 403, 429)


class SourceError(Exception):
    """Base exception for source fetch failures"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientSourceError(SourceError):
    """Network error, timeout, 5xx or unparseable body; try again next cycle."""
    pass


class SourceQuotaError(SourceError):
    """Plan or rate limit refused the request (402/403/429)."""
    pass


class SourceAuthError(SourceError):
    """Credentials rejected (401)."""
    pass


def describe_status(source: str, status_code: int, hints: Optional[Dict[int, str]] = None) -> str:
    hint = (hints or {}).get(status_code)
    if hint:
        return f"{source} API error ({status_code}): {hint}"
    return f"{source} API error ({status_code})"


def get_json(
    session: requests.Session,
    url: str,
    *,
    source: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 10.0,
    hints: Optional[Dict[int, str]] = None,
) -> Any:
    """GET ``url`` and return the decoded JSON body, raising a ``SourceError`` subclass on failure."""
    try:
        response = session.get(url, params=params, headers=headers, timeout=timeout)
    except requests.exceptions.Timeout as e:
        raise TransientSourceError(f"{source} request timed out after {timeout}s") from e
    except requests.exceptions.RequestException as e:
        raise TransientSourceError(f"{source} request failed: {e}") from e

    status = response.status_code
    if status == 401:
        raise SourceAuthError(describe_status(source, status, hints), status)
    if status in QUOTA_STATUS_CODES:
        raise SourceQuotaError(describe_status(source, status, hints), status)
    if status >= 400:
        raise TransientSourceError(describe_status(source, status, hints), status)

    try:
        return response.json()
    except ValueError as e:
        raise TransientSourceError(f"{source} returned a non-JSON body") from e
