"""
Wire Schemas for the Store Protocol

This package contains the functions that build the JSON frames exchanged
between ``RemoteStore`` clients and the ``StoreServer``.

Frames:
    - requests: ``{"type": op, "request_id": id, "data": {...}}``
    - responses: ``result`` / ``error`` frames echoing the request id
    - events: ``value`` frames pushed for subscriptions
"""

from .requests import REQUEST_TYPES, create_request
from .responses import create_error_response, create_result_response
from .events import create_value_event

__all__ = [
    "REQUEST_TYPES",
    "create_request",
    "create_error_response",
    "create_result_response",
    "create_value_event",
]
