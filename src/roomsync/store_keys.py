"""
Store layout for chat records.

Each template is formatted with the ids of the record it addresses.
"""

ROOMS_PATH = "rooms"
ROOM_KEY = "rooms/{room_id}"
ROOM_MEMBERS_KEY = "roomMembers/{room_id}"
MEMBER_KEY = "roomMembers/{room_id}/{uid}"
MESSAGES_KEY = "messages/{room_id}"
MESSAGE_KEY = "messages/{room_id}/{message_id}"
STATUS_PATH = "status"
STATUS_KEY = "status/{uid}"
TYPING_KEY = "typing/{room_id}"
TYPING_USER_KEY = "typing/{room_id}/{uid}"
USER_ROOMS_KEY = "userRooms/{uid}"
USER_ROOM_KEY = "userRooms/{uid}/{room_id}"
