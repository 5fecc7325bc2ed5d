"""
Wiring of stores, gateway and printer from settings, shared by the API and
by embedding applications.
"""

from functools import lru_cache
from typing import Union

from driver_portal.config import settings
from driver_portal.database import get_session_factory
from driver_portal.printing.client import HttpPrintClient
from driver_portal.printing.dispatch import PrinterDispatchService
from driver_portal.services.admin_service import AdminService
from driver_portal.services.driver_service import DriverService
from driver_portal.services.return_form_service import ReturnFormService
from driver_portal.stores.local_cache import LocalCacheStore
from driver_portal.stores.remote import SQLDocumentStore
from driver_portal.sync.gateway import SyncGateway


@lru_cache()
def get_local_store() -> LocalCacheStore:
    return LocalCacheStore(settings.LOCAL_CACHE_PATH, quota_bytes=settings.LOCAL_CACHE_QUOTA_BYTES)


@lru_cache()
def get_remote_store() -> SQLDocumentStore:
    return SQLDocumentStore(get_session_factory(), poll_interval=settings.SUBSCRIPTION_POLL_INTERVAL)


@lru_cache()
def get_gateway() -> SyncGateway:
    return SyncGateway(
        get_remote_store(),
        get_local_store(),
        remote_timeout=settings.REMOTE_WRITE_TIMEOUT,
        probe_timeout=settings.PROBE_TIMEOUT,
    )


@lru_cache()
def get_printer_dispatch() -> PrinterDispatchService:
    """Printer on this host's LAN; used by the print endpoint"""
    return PrinterDispatchService(timezone=settings.TIMEZONE, **settings.get_printer_config())


def get_printer() -> Union[PrinterDispatchService, HttpPrintClient]:
    """Printer used after a form submission: remote endpoint if configured, else local dispatch"""
    url = settings.get_print_service_url()
    if url:
        return HttpPrintClient(url)
    return get_printer_dispatch()


def get_driver_service() -> DriverService:
    return DriverService(get_gateway())


def get_return_form_service() -> ReturnFormService:
    return ReturnFormService(get_gateway(), get_printer())


def get_admin_service() -> AdminService:
    return AdminService(get_gateway(), timezone=settings.TIMEZONE)
