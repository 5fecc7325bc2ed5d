from __future__ import annotations

import asyncio
import uuid
from typing import Any, Dict, List, Optional

import pytest

from driver_portal.exceptions import AuthError, IdentityProviderUnavailable, RemoteStoreError
from driver_portal.stores.local_cache import LocalCacheStore
from driver_portal.stores.remote import CommitGate, DocumentQuery, DocumentSnapshot, Subscription, sort_documents
from driver_portal.sync.gateway import SyncGateway
from driver_portal.sync.session import AuthenticatedUser


class FakeRemoteStore:
    """
    In-memory document store that can be taken offline or made to hang.

    ``fail_adds`` and ``fail_gets`` break one kind of call while the rest keep
    working; ``commit_delay`` stalls a write after it has claimed its gate.
    """

    def __init__(self, poll_interval: float = 0.01):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.poll_interval = poll_interval
        self.available = True
        self.hang = False
        self.fail_adds = False
        self.fail_gets = False
        self.commit_delay = 0.0

    async def _check(self) -> None:
        if self.hang:
            await asyncio.Event().wait()
        if not self.available:
            raise RemoteStoreError("remote store offline")

    async def _commit(self, gate: Optional[CommitGate], target: str) -> None:
        if gate is not None and not gate.claim():
            raise RemoteStoreError(f"Write to {target} abandoned before commit")
        if self.commit_delay:
            await asyncio.sleep(self.commit_delay)

    def docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.setdefault(collection, {})

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        await self._check()
        if self.fail_gets:
            raise RemoteStoreError(f"Failed to read {collection}/{doc_id}")
        data = self.docs(collection).get(doc_id)
        return dict(data) if data is not None else None

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False,
                  gate: Optional[CommitGate] = None) -> Dict[str, Any]:
        await self._check()
        current = dict(self.docs(collection).get(doc_id) or {}) if merge else {}
        current.update(data)
        await self._commit(gate, f"{collection}/{doc_id}")
        self.docs(collection)[doc_id] = current
        return dict(current)

    async def add(self, collection: str, data: Dict[str, Any], gate: Optional[CommitGate] = None) -> str:
        await self._check()
        if self.fail_adds:
            raise RemoteStoreError(f"Failed to add to {collection}")
        doc_id = uuid.uuid4().hex
        await self._commit(gate, f"{collection}/{doc_id}")
        self.docs(collection)[doc_id] = dict(data)
        return doc_id

    async def query(self, query: DocumentQuery) -> List[DocumentSnapshot]:
        await self._check()
        documents = [dict(data, id=doc_id) for doc_id, data in self.docs(query.collection).items()
                     if query.matches(data)]
        ordered = sort_documents(documents, query.order_by, query.descending)
        return [DocumentSnapshot(id=d.pop("id"), data=d) for d in ordered]

    def listen(self, query, on_snapshot, on_error=None) -> Subscription:
        return Subscription(self, query, on_snapshot, on_error, self.poll_interval)


class FakeAuthProvider:
    def __init__(self):
        self.accounts: Dict[str, tuple] = {}
        self.unavailable = False
        self.created: List[str] = []
        self.sign_outs = 0

    def add_account(self, uid: str, email: str, password: str) -> None:
        self.accounts[email] = (uid, password)

    async def sign_in(self, email: str, password: str) -> AuthenticatedUser:
        account = self.accounts.get(email)
        if account is None or account[1] != password:
            raise AuthError("Invalid email or password")
        return AuthenticatedUser(uid=account[0], email=email)

    async def create_account(self, email: str, password: str) -> AuthenticatedUser:
        if self.unavailable:
            raise IdentityProviderUnavailable("network request failed")
        if email in self.accounts:
            raise AuthError("Email already in use")
        uid = f"uid-{len(self.accounts) + 1}"
        self.accounts[email] = (uid, password)
        self.created.append(email)
        return AuthenticatedUser(uid=uid, email=email)

    async def sign_out(self) -> None:
        self.sign_outs += 1


@pytest.fixture
def local_store(tmp_path):
    return LocalCacheStore(str(tmp_path / "local_cache.json"))


@pytest.fixture
def remote_store():
    return FakeRemoteStore()


@pytest.fixture
def gateway(remote_store, local_store):
    return SyncGateway(remote_store, local_store, remote_timeout=0.1, probe_timeout=0.1)


@pytest.fixture
def auth_provider():
    return FakeAuthProvider()
