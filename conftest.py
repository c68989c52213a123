import os

# Default to a throwaway SQLite store for tests
os.environ.setdefault("STORE_URL", "sqlite+aiosqlite:///./test_orderhub.db")
os.environ.setdefault("STORE_AUTO_CREATE", "true")
