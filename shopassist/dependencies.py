from fastapi import Request

from shopassist.services.chatbot import ChatService
from shopassist.services.sessions import SessionStore


def get_chat_service(request: Request) -> ChatService:
    """Provide the app-owned chat service to endpoint functions."""
    return request.app.state.chat_service


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store
