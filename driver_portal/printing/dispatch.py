"""
Raw TCP print dispatch: find a printer listening on the LAN and stream a
plain-text job to it.

Discovery walks host suffixes 2..254 of the configured subnet in order and
takes the first address that accepts a connection on the printer port. With
``max_concurrency`` above one, hosts are probed in windows of that size and
the lowest responding suffix of the first window with any responder wins, so
the outcome matches a serial scan. The raw printer protocol has no
acknowledgement: a job counts as printed once its bytes are written.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from driver_portal.exceptions import PrinterNotFoundError, PrintTransmissionError
from driver_portal.printing.formatter import render_return_form
from driver_portal.schemas.return_form import PrintRequest

logger = logging.getLogger(__name__)

FIRST_HOST = 2
LAST_HOST = 254

Prober = Callable[[str, int, float], Awaitable[bool]]
Sender = Callable[[str, int, bytes, float], Awaitable[None]]


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass


async def tcp_probe(host: str, port: int, timeout: float) -> bool:
    """Whether host completes a TCP handshake on port within timeout"""
    try:
        _reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, asyncio.TimeoutError):
        return False
    await _close(writer)
    return True


async def tcp_send(host: str, port: int, payload: bytes, timeout: float) -> None:
    """
    Open a fresh connection, write payload and close.

    Raises:
        PrintTransmissionError: on connect timeout or any socket error
    """
    try:
        _reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except asyncio.TimeoutError:
        raise PrintTransmissionError(f"Timed out connecting to printer {host}:{port}")
    except OSError as e:
        raise PrintTransmissionError(f"Could not connect to printer {host}:{port}: {e}")

    try:
        writer.write(payload)
        await asyncio.wait_for(writer.drain(), timeout=timeout)
    except asyncio.TimeoutError:
        raise PrintTransmissionError(f"Timed out writing to printer {host}:{port}")
    except OSError as e:
        raise PrintTransmissionError(f"Failed writing to printer {host}:{port}: {e}")
    finally:
        await _close(writer)


@dataclass(frozen=True)
class PrintResult:
    success: bool
    message: str
    printer_ip: Optional[str] = None
    form_id: Optional[str] = None


class PrinterDispatchService:
    """Discovers a network printer and sends return-form receipts to it"""

    def __init__(self, subnet: str = "192.168.1", port: int = 9100, connect_timeout: float = 0.2,
                 max_concurrency: int = 1, printer_host: Optional[str] = None, send_timeout: float = 5.0,
                 timezone: str = "UTC", prober: Prober = tcp_probe, sender: Sender = tcp_send):
        self.subnet = subnet
        self.port = port
        self.connect_timeout = connect_timeout
        self.max_concurrency = max(1, int(max_concurrency))
        self.printer_host = printer_host
        self.send_timeout = send_timeout
        self.timezone = timezone
        self._probe = prober
        self._send = sender

    def candidates(self) -> List[str]:
        return [f"{self.subnet}.{suffix}" for suffix in range(FIRST_HOST, LAST_HOST + 1)]

    async def discover(self) -> str:
        """
        Return the first address in scan order that accepts a connection.

        Raises:
            PrinterNotFoundError: if nothing on the subnet answers
        """
        if self.printer_host:
            return self.printer_host

        hosts = self.candidates()
        for start in range(0, len(hosts), self.max_concurrency):
            window = hosts[start:start + self.max_concurrency]
            answers = await asyncio.gather(
                *(self._probe(host, self.port, self.connect_timeout) for host in window)
            )
            for host, alive in zip(window, answers):
                if alive:
                    logger.info(f"Found printer at {host}:{self.port}")
                    return host

        raise PrinterNotFoundError()

    async def send(self, host: str, document: str) -> None:
        await self._send(host, self.port, document.encode("utf-8"), self.send_timeout)

    async def print_return_form(self, form: PrintRequest, printed_at: Optional[datetime] = None) -> PrintResult:
        """
        Render and print a stored return form.

        Discovery and transmission failures come back as distinct unsuccessful
        results; nothing here raises for a print problem.
        """
        content = render_return_form(form, printed_at, self.timezone)

        try:
            printer_ip = await self.discover()
        except PrinterNotFoundError as e:
            logger.warning(f"Form {form.form_id} not printed: {e}")
            return PrintResult(False, str(e), form_id=form.form_id)

        try:
            await self.send(printer_ip, content)
        except PrintTransmissionError as e:
            logger.error(f"Print error for form {form.form_id}: {e}")
            return PrintResult(False, f"Failed to print return form: {e}", printer_ip=printer_ip, form_id=form.form_id)

        logger.info(f"Print job sent to printer: {printer_ip}")
        return PrintResult(True, "Return form sent to printer successfully", printer_ip=printer_ip, form_id=form.form_id)
