"""
revIsion RSC v1.0 — Session State Package
"""
from revision_tutor.state.session import SessionState, create_initial_state

__all__ = ["SessionState", "create_initial_state"]
