from .local_cache import LocalCacheStore
from .remote import CommitGate, DocumentQuery, DocumentSnapshot, RemoteStore, SQLDocumentStore, Subscription

__all__ = [
    "LocalCacheStore",
    "CommitGate", "DocumentQuery", "DocumentSnapshot", "RemoteStore", "SQLDocumentStore", "Subscription"
]
