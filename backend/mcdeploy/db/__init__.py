from .database import SessionFactory, create_engine_and_sessions, init_db, to_async_url

__all__ = ["SessionFactory", "create_engine_and_sessions", "init_db", "to_async_url"]
