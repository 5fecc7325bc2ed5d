from .results import Ok, RemoteUnavailable, WriteFailed, Source
from .gateway import Feed, SyncGateway
from .session import AuthenticatedUser, AuthProvider, Session, SessionManager

__all__ = [
    "Ok", "RemoteUnavailable", "WriteFailed", "Source",
    "Feed", "SyncGateway",
    "AuthenticatedUser", "AuthProvider", "Session", "SessionManager"
]
