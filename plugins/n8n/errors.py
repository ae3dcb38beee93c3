"""Errors raised by the n8n plugin."""

from typing import Optional


class N8nApiError(Exception):
    """Raised when a call against the n8n REST API, or a workflow operation
    built on top of it, cannot be completed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
