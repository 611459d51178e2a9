from fastapi import Request

from touchin.services.session import SessionRegistry


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions
