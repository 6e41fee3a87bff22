from __future__ import annotations

from .config import settings

HISTORY_LIMIT = settings.history_limit
MAX_NAME_LENGTH = settings.max_name_length
MESSAGE_ID_CHARS = "abcdefghijklmnopqrstuvwxyz0123456789"
MESSAGE_ID_LENGTH = 7
UNKNOWN_IDENTITY = "unknown"
POLL_CHOICES = ("yes", "no")
EMOJI_STORY_LENGTH = 10
