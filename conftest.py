"""Global pytest configuration."""

import os

# Deterministic settings for tests before any imports: no API key, stub LLM client
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("LLM_ENABLED", "true")
