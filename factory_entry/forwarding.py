"""Relay form submissions to the configured external endpoint."""
from __future__ import annotations

import json
import logging
from json import JSONDecodeError
from typing import Any, Optional

import httpx

from .storage import SettingsStore


logger = logging.getLogger(__name__)


class ForwardingError(Exception):
    """The external endpoint could not be reached or rejected the payload."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SubmissionForwarder:
    """Send one JSON payload to the forwarding URL, at most once per call."""

    def __init__(
        self,
        settings_store: SettingsStore,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.settings_store = settings_store
        self.transport = transport

    def forward(self, payload: Any) -> Any:
        # Raises ConfigurationError before any request is made.
        destination_url = self.settings_store.forwarding_url()

        try:
            with httpx.Client(transport=self.transport) as client:
                response = client.post(
                    destination_url,
                    content=json.dumps(payload).encode("utf-8"),
                    headers={"Content-Type": "application/json"},
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ForwardingError(f"External API Error: {exc}") from exc

        if not response.is_success:
            raise ForwardingError(
                f"External API Error: {response.status_code} "
                f"{response.reason_phrase} - {response.text}",
                status_code=response.status_code,
            )

        logger.info("Forwarded submission to %s (%s)", destination_url, response.status_code)
        if not response.content:
            return {}
        try:
            return response.json()
        except (JSONDecodeError, UnicodeDecodeError):
            return {}


__all__ = ["ForwardingError", "SubmissionForwarder"]
