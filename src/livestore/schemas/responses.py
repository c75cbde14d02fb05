"""
Response Schema Definitions

Contains functions for creating standardized response structures.
"""

from typing import Any, Dict, Optional, Union


def create_result_response(
    request_id: Union[int, str, None],
    data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Create a successful response to a request.

    Args:
        request_id: ID of the request being answered
        data: Result payload

    Returns:
        dict: Result response
    """
    return {
        "type": "result",
        "request_id": request_id,
        "data": data or {},
    }


def create_error_response(
    request_id: Union[int, str, None],
    error_code: str,
    message: str,
) -> Dict[str, Any]:
    """
    Create an error response.

    Args:
        request_id: ID of the failed request (None if it could not be read)
        error_code: Machine-readable error code
        message: Human-readable diagnostic

    Returns:
        dict: Error response
    """
    return {
        "type": "error",
        "request_id": request_id,
        "data": {
            "error_code": error_code,
            "message": message,
        },
    }
