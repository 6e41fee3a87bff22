from __future__ import annotations

import os

import uvicorn

from moodroom.config import settings

BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=True,
        app_dir=BACKEND_DIR,
        reload_dirs=[BACKEND_DIR],
    )
