"""Session lifecycle: start / pause / resume / stop around one audio source."""
from livescribe.session.controller import LiveSession, SessionState
from livescribe.session.factory import create_live_session

__all__ = ["LiveSession", "SessionState", "create_live_session"]
