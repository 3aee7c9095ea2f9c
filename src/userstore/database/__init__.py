from .session import create_database_engine, create_session_factory, session_scope, reset_database

__all__ = ["create_database_engine", "create_session_factory", "session_scope", "reset_database"]
