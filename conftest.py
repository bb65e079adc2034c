"""Global pytest configuration."""

import os

# Tests run against the in-memory store and the stub provider unless a test
# builds its own engine or provider.
for _var in ("DATABASE_URL", "REDIS_URL", "PROVIDER_API_KEYS", "GEMINI_API_KEY"):
    os.environ.pop(_var, None)
