"""Browser to OpenAI Realtime audio relay."""
from __future__ import annotations

from pathlib import Path

from dotenv import find_dotenv, load_dotenv

__version__ = "0.1.0"

_ROOT_DIR = Path(__file__).resolve().parent.parent

# Server-level .env first, then the working directory's, then .env.local overrides.
load_dotenv(_ROOT_DIR / ".env")
load_dotenv(find_dotenv(usecwd=True))
load_dotenv(_ROOT_DIR / ".env.local", override=True)
