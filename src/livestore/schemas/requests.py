"""
Request Schema Definitions

Contains the request types understood by the store server and a helper
for building request frames.
"""

from typing import Any, Dict, Optional, Union

REQUEST_TYPES = (
    "read",
    "write",
    "update",
    "remove",
    "compare_and_set",
    "push_key",
    "subscribe",
    "unsubscribe",
    "on_disconnect",
    "server_time",
)


def create_request(
    request_type: str,
    request_id: Union[int, str],
    data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Create a request frame.

    Args:
        request_type: One of REQUEST_TYPES
        request_id: Identifier echoed back in the response
        data: Request parameters

    Returns:
        dict: Request frame
    """
    return {
        "type": request_type,
        "request_id": request_id,
        "data": data or {},
    }
