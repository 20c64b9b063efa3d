from .session_store import SessionRecord, SessionStore

__all__ = ["SessionRecord", "SessionStore"]
