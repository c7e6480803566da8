from fastapi import Request

from app.services.session_manager import SessionManager
from app.services.stream_registry import StreamRegistry


def get_registry(request: Request) -> StreamRegistry:
    return request.app.state.registry


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager
