import os

# Load .env.test for local overrides (backend URL, storage) when present
from dotenv import load_dotenv

env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)

# Never write the developer's on-disk store from tests
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("ENVIRONMENT", "local")

from libs.common.config import get_settings  # noqa: E402

# Clear cached settings to reload with the test environment
get_settings.cache_clear()
settings = get_settings()
