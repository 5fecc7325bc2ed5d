"""
Sync gateway: remote-first writes with a silent local fallback, and reads
that route to whichever store is reachable at call time.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import ValidationError as SchemaError

from driver_portal.exceptions import LocalStoreWriteError
from driver_portal.schemas.base import DocumentModel
from driver_portal.schemas.punch import PunchRecord, PunchType
from driver_portal.schemas.return_form import ReturnForm
from driver_portal.schemas.user import UserRecord, UserRole
from driver_portal.stores.local_cache import LocalCacheStore
from driver_portal.stores.remote import (
    PUNCH_RECORDS, RETURN_FORMS, USERS,
    CommitGate, DocumentQuery, DocumentSnapshot, RemoteStore, Subscription, sort_documents,
)
from driver_portal.sync.results import Ok, RemoteResult, RemoteUnavailable, Source, WriteFailed, WriteResult
from driver_portal.utils.datetime_utils import to_iso, utc_now

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=DocumentModel)

# Local cache keys
USER_PROFILE_PREFIX = "userData_"
USER_ROLE_PREFIX = "userRole_"
PUNCH_RECORDS_KEY = "punchRecords"
RETURN_FORMS_KEY = "returnForms"
FALLBACK_USERS_KEY = "fallbackUsers"
FALLBACK_AUTH_KEY = "fallbackAuth"

PROBE_QUERY = DocumentQuery(USERS).where("role", "__probe__")


def profile_key(user_id: str) -> str:
    return f"{USER_PROFILE_PREFIX}{user_id}"


def default_profile(email: str = "") -> Dict[str, Any]:
    return {"email": email, "role": UserRole.DRIVER.value, "isActive": True}


class Feed:
    """
    Result of a list operation.

    Remote feeds stay live until ``unsubscribe``; local feeds deliver once and
    unsubscribing them is a no-op.
    """

    def __init__(self, source: Source, subscription: Optional[Subscription] = None):
        self.source = source
        self._subscription = subscription

    @property
    def live(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    def unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()


class SyncGateway:
    """Routes every read and write between the remote and the local store"""

    def __init__(self, remote: RemoteStore, local: LocalCacheStore,
                 remote_timeout: float = 5.0, probe_timeout: float = 1.0):
        self.remote = remote
        self.local = local
        self.remote_timeout = remote_timeout
        self.probe_timeout = probe_timeout

    # ------------------------------------------------------------------
    # Routing primitives
    # ------------------------------------------------------------------

    async def _attempt_remote(self, label: str, operation: Callable[[], Awaitable[Any]]) -> RemoteResult:
        try:
            value = await asyncio.wait_for(operation(), timeout=self.remote_timeout)
            return Ok(value, Source.REMOTE)
        except asyncio.TimeoutError:
            return RemoteUnavailable(f"{label} timed out after {self.remote_timeout}s")
        except Exception as e:
            return RemoteUnavailable(f"{label} failed: {e}")

    async def _attempt_write(self, label: str, operation: Callable[[CommitGate], Awaitable[Any]]) -> RemoteResult:
        """
        Run one remote write bounded by ``remote_timeout``.

        On timeout the write is abandoned through its gate and reported as
        unavailable. If the store already claimed the gate its commit is in
        flight, so it is awaited instead: a write that lands remotely is never
        repeated locally.
        """
        gate = CommitGate()
        task = asyncio.ensure_future(operation(gate))
        try:
            done, _pending = await asyncio.wait({task}, timeout=self.remote_timeout)
        except asyncio.CancelledError:
            gate.abandon()
            task.cancel()
            raise

        if not done:
            if gate.abandon():
                task.cancel()
                return RemoteUnavailable(f"{label} timed out after {self.remote_timeout}s")
            logger.warning(f"{label}: remote commit still running after {self.remote_timeout}s, waiting for it")

        try:
            return Ok(await task, Source.REMOTE)
        except Exception as e:
            return RemoteUnavailable(f"{label} failed: {e}")

    def _write_local(self, label: str, operation: Callable[[], Any]) -> WriteResult:
        try:
            return Ok(operation(), Source.LOCAL)
        except LocalStoreWriteError as e:
            logger.error(f"{label}: local write failed after remote failure: {e}")
            return WriteFailed(str(e))

    async def _write(self, label: str, remote_op: Callable[[CommitGate], Awaitable[Any]],
                     local_op: Callable[[], Any]) -> WriteResult:
        result = await self._attempt_write(label, remote_op)
        if isinstance(result, Ok):
            return result

        logger.warning(f"{label}: remote store unavailable ({result.reason}), saving locally")
        return self._write_local(label, local_op)

    async def probe_remote(self) -> bool:
        """
        Decide whether the remote store is reachable.

        Opens a throwaway subscription on a query that matches nothing. Any
        snapshot, even an empty one, means reachable; an error or no answer
        within ``probe_timeout`` means unreachable. The subscription is
        always released.
        """
        loop = asyncio.get_running_loop()
        answered = loop.create_future()

        def on_snapshot(_snapshot):
            if not answered.done():
                answered.set_result(True)

        def on_error(_error):
            if not answered.done():
                answered.set_result(False)

        try:
            subscription = self.remote.listen(PROBE_QUERY, on_snapshot, on_error)
        except Exception as e:
            logger.info(f"Remote store probe could not subscribe: {e}")
            return False

        try:
            return await asyncio.wait_for(answered, timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            logger.info(f"Remote store probe timed out after {self.probe_timeout}s")
            return False
        finally:
            subscription.unsubscribe()

    # ------------------------------------------------------------------
    # User profiles
    # ------------------------------------------------------------------

    def get_local_profile(self, user_id: str) -> Optional[UserRecord]:
        data = self.local.get(profile_key(user_id))
        if not isinstance(data, dict):
            return None
        return self._parse(UserRecord, user_id, data)

    async def get_user_profile(self, user_id: str) -> Optional[UserRecord]:
        """
        Load a profile from the remote store, or the local cache when the
        remote is unavailable or has no document for this user.
        """
        result = await self._attempt_remote("get_user_profile", lambda: self.remote.get(USERS, user_id))
        if isinstance(result, Ok) and result.value is not None:
            return self._parse(UserRecord, user_id, result.value)

        if isinstance(result, RemoteUnavailable):
            logger.warning(f"Remote profile read failed ({result.reason}), using local cache")
        return self.get_local_profile(user_id)

    async def update_user_profile(self, user_id: str, patch: Dict[str, Any],
                                  base: Optional[UserRecord] = None) -> WriteResult:
        """
        Merge patch into a user profile.

        Args:
            user_id: profile owner
            patch: camelCase fields to merge
            base: last known full profile, used as the starting point when the
                patch has to be applied to the local cache

        Returns:
            Ok(UserRecord) or WriteFailed
        """
        patch = dict(patch)
        base_doc = base.to_document() if base else None

        async def remote_op(gate):
            merged = await self.remote.set(USERS, user_id, patch, merge=True, gate=gate)
            return self._parse(UserRecord, user_id, merged)

        def local_op():
            key = profile_key(user_id)
            existing = self.local.get(key)
            if base_doc is not None:
                doc = dict(base_doc)
            elif isinstance(existing, dict):
                doc = dict(existing)
            else:
                doc = default_profile(patch.get("email", ""))
            doc.update(patch)
            self.local.set(key, doc)
            return self._parse(UserRecord, user_id, doc)

        return await self._write("update_user_profile", remote_op, local_op)

    async def register_user(self, user_id: str, email: str, role: UserRole,
                            at: Optional[datetime] = None) -> WriteResult:
        """Create the profile document written at sign-up"""
        now = to_iso(at or utc_now())
        doc: Dict[str, Any] = {"email": email, "role": UserRole(role).value, "createdAt": now}
        if UserRole(role) == UserRole.DRIVER:
            doc.update({"pin": None, "isActive": True})

        async def remote_op(gate):
            stored = await self.remote.set(USERS, user_id, doc, gate=gate)
            return self._parse(UserRecord, user_id, stored)

        def local_op():
            self.local.set(profile_key(user_id), doc)
            return self._parse(UserRecord, user_id, doc)

        return await self._write("register_user", remote_op, local_op)

    def add_fallback_user(self, email: str, role: UserRole, at: Optional[datetime] = None) -> UserRecord:
        """
        Remember a user that has no remote identity.

        Raises:
            LocalStoreWriteError: if the cache cannot be written
        """
        doc = {"email": email, "role": UserRole(role).value, "createdAt": to_iso(at or utc_now())}
        self.local.append_to_list(FALLBACK_USERS_KEY, doc)
        return self._parse(UserRecord, f"fallback_{email}", doc)

    async def set_pin(self, user_id: str, email: str, pin: str, base: Optional[UserRecord] = None,
                      at: Optional[datetime] = None) -> WriteResult:
        now = to_iso(at or utc_now())
        patch = {"email": email, "role": UserRole.DRIVER.value, "pin": pin, "isActive": True, "updatedAt": now}
        if base is None or base.created_at is None:
            patch["createdAt"] = now
        return await self.update_user_profile(user_id, patch, base=base)

    # ------------------------------------------------------------------
    # Punches and return forms
    # ------------------------------------------------------------------

    async def record_punch(self, user_id: str, email: str, punch_type: PunchType,
                           base: Optional[UserRecord] = None, at: Optional[datetime] = None,
                           create_profile: bool = False) -> WriteResult:
        """
        Update the punch pair on the profile and append a punch record.

        Punch-in sets ``lastPunchIn`` and clears ``lastPunchOut``; punch-out
        sets ``lastPunchOut`` and leaves ``lastPunchIn`` alone. Each of the two
        documents lands in exactly one store. Once the profile write has fallen
        back, the record goes straight to the local cache. With
        ``create_profile`` the patch also carries the default driver fields,
        for drivers that punch before any profile document exists.

        Returns:
            Ok(PunchRecord) or WriteFailed
        """
        now = at or utc_now()
        stamp = to_iso(now)
        punch_type = PunchType(punch_type)

        if punch_type == PunchType.PUNCH_IN:
            patch = {"lastPunchIn": stamp, "lastPunchOut": None, "updatedAt": stamp}
        else:
            patch = {"lastPunchOut": stamp, "updatedAt": stamp}
        if create_profile:
            patch = dict(default_profile(email), createdAt=stamp, **patch)

        profile_result = await self.update_user_profile(user_id, patch, base=base)
        if isinstance(profile_result, WriteFailed):
            return profile_result

        record = PunchRecord(driver_id=user_id, driver_email=email, type=punch_type,
                             timestamp=now, created_at=now)
        document = record.to_document()

        def local_op():
            return self._append_local(PUNCH_RECORDS_KEY, PunchRecord, document)

        if profile_result.source == Source.LOCAL:
            return self._write_local("record_punch", local_op)

        async def remote_op(gate):
            doc_id = await self.remote.add(PUNCH_RECORDS, document, gate=gate)
            return self._parse(PunchRecord, doc_id, document)

        return await self._write("record_punch", remote_op, local_op)

    async def submit_return_form(self, form: ReturnForm) -> WriteResult:
        """
        Persist a new return form.

        Returns:
            Ok(ReturnForm) carrying the assigned id, or WriteFailed
        """
        document = form.to_document()
        if document.get("createdAt") is None:
            document["createdAt"] = to_iso(utc_now())

        async def remote_op(gate):
            doc_id = await self.remote.add(RETURN_FORMS, document, gate=gate)
            return self._parse(ReturnForm, doc_id, document)

        def local_op():
            return self._append_local(RETURN_FORMS_KEY, ReturnForm, document)

        return await self._write("submit_return_form", remote_op, local_op)

    def _append_local(self, key: str, model: Type[M], document: Dict[str, Any]) -> M:
        doc_id = uuid.uuid4().hex
        self.local.append_to_list(key, dict(document, id=doc_id))
        return self._parse(model, doc_id, document)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_drivers(self, on_update: Callable[[List[UserRecord]], None]) -> Feed:
        query = DocumentQuery(USERS).where("role", UserRole.DRIVER.value)
        return await self._open_feed(query, UserRecord, self.local_drivers, on_update)

    async def list_return_forms(self, on_update: Callable[[List[ReturnForm]], None],
                                driver_id: Optional[str] = None) -> Feed:
        query = DocumentQuery(RETURN_FORMS)
        if driver_id:
            query = query.where("driverId", driver_id)
        return await self._open_feed(query, ReturnForm, lambda: self.local_return_forms(driver_id), on_update)

    async def list_punch_records(self, on_update: Callable[[List[PunchRecord]], None],
                                 driver_id: Optional[str] = None) -> Feed:
        query = DocumentQuery(PUNCH_RECORDS)
        if driver_id:
            query = query.where("driverId", driver_id)
        return await self._open_feed(query, PunchRecord, lambda: self.local_punch_records(driver_id), on_update)

    async def fetch_drivers(self) -> List[UserRecord]:
        return await self._fetch(self.list_drivers)

    async def fetch_return_forms(self, driver_id: Optional[str] = None) -> List[ReturnForm]:
        return await self._fetch(lambda cb: self.list_return_forms(cb, driver_id))

    async def fetch_punch_records(self, driver_id: Optional[str] = None) -> List[PunchRecord]:
        return await self._fetch(lambda cb: self.list_punch_records(cb, driver_id))

    async def _fetch(self, open_feed) -> list:
        """Take the first delivery of a feed and close it"""
        loop = asyncio.get_running_loop()
        first = loop.create_future()

        def on_update(items):
            if not first.done():
                first.set_result(items)

        feed = await open_feed(on_update)
        try:
            return await first
        finally:
            feed.unsubscribe()

    async def _open_feed(self, query: DocumentQuery, model: Type[M],
                         local_loader: Callable[[], List[M]], on_update: Callable[[List[M]], None]) -> Feed:
        if not await self.probe_remote():
            logger.info(f"Remote store unreachable, serving {query.collection} from local cache")
            on_update(local_loader())
            return Feed(Source.LOCAL)

        def on_snapshot(snapshot: List[DocumentSnapshot]):
            on_update(self._parse_snapshot(model, snapshot))

        def on_error(error: Exception):
            logger.warning(f"Live {query.collection} query failed ({error}), serving local cache")
            on_update(local_loader())

        subscription = self.remote.listen(query, on_snapshot, on_error)
        return Feed(Source.REMOTE, subscription)

    def local_drivers(self) -> List[UserRecord]:
        """
        Drivers known to this device: cached per-user profiles first, then
        fallback users whose e-mail is not already listed.
        """
        documents = []
        for key in self.local.list_keys_with_prefix(USER_PROFILE_PREFIX):
            data = self.local.get(key)
            if isinstance(data, dict) and data.get("role") == UserRole.DRIVER.value:
                documents.append(dict(data, id=key[len(USER_PROFILE_PREFIX):]))

        seen = {d.get("email") for d in documents}
        fallback_users = self.local.get(FALLBACK_USERS_KEY) or []
        for user in fallback_users:
            if not isinstance(user, dict) or user.get("role") != UserRole.DRIVER.value:
                continue
            if user.get("email") in seen:
                continue
            seen.add(user.get("email"))
            documents.append({
                "id": f"fallback_{user.get('email')}",
                "email": user.get("email", ""),
                "role": UserRole.DRIVER.value,
                "isActive": True,
                "lastPunchIn": None,
                "lastPunchOut": None,
                "createdAt": user.get("createdAt"),
            })

        return self._parse_documents(UserRecord, sort_documents(documents))

    def local_return_forms(self, driver_id: Optional[str] = None) -> List[ReturnForm]:
        return self._parse_documents(ReturnForm, self._local_list(RETURN_FORMS_KEY, driver_id))

    def local_punch_records(self, driver_id: Optional[str] = None) -> List[PunchRecord]:
        return self._parse_documents(PunchRecord, self._local_list(PUNCH_RECORDS_KEY, driver_id))

    def _local_list(self, key: str, driver_id: Optional[str]) -> List[Dict[str, Any]]:
        items = self.local.get(key) or []
        documents = [dict(item) for item in items if isinstance(item, dict)]
        if driver_id:
            documents = [d for d in documents if d.get("driverId") == driver_id]
        return sort_documents(documents)

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _parse(self, model: Type[M], doc_id: Optional[str], data: Dict[str, Any]) -> M:
        return model.from_document(doc_id, data)

    def _parse_snapshot(self, model: Type[M], snapshot: List[DocumentSnapshot]) -> List[M]:
        return self._parse_documents(model, [dict(s.data, id=s.id) for s in snapshot])

    def _parse_documents(self, model: Type[M], documents: List[Dict[str, Any]]) -> List[M]:
        parsed = []
        for document in documents:
            try:
                parsed.append(model.from_document(document.get("id"), document))
            except SchemaError as e:
                logger.warning(f"Skipping malformed {model.__name__} document {document.get('id')}: {e}")
        return parsed
