from .engine import dumps, get_engine, loads

__all__ = ["dumps", "get_engine", "loads"]
