"""
Event Schema Definitions

Contains functions for creating the events pushed to subscribers.
"""

from typing import Any, Dict


def create_value_event(subscription_id: str, path: str, value: Any) -> Dict[str, Any]:
    """
    Create a value event for a subscription.

    Args:
        subscription_id: Client-chosen subscription identifier
        path: The subscribed path
        value: Current value at the path (None when absent)

    Returns:
        dict: Event frame
    """
    return {
        "type": "value",
        "data": {
            "subscription_id": subscription_id,
            "path": path,
            "value": value,
        },
    }
