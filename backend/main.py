from __future__ import annotations

import logging

from moodroom.application import create_app
from moodroom.config import settings

logging.basicConfig(level=settings.log_level)

app = create_app()
