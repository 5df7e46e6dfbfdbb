"""
Persistence package exposing the SQLAlchemy-backed run recorder.
"""

from .store import RunRecorder, create_session_factory, session_scope

__all__ = ["RunRecorder", "create_session_factory", "session_scope"]
