from fastapi import Request

from app.core.dispatcher import RealtimeDispatcher


def get_dispatcher(request: Request) -> RealtimeDispatcher:
    """FastAPI dependency returning the process-wide realtime dispatcher."""
    return request.app.state.dispatcher
