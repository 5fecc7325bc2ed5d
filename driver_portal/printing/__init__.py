from .dispatch import PrintResult, PrinterDispatchService, tcp_probe, tcp_send
from .client import HttpPrintClient
from .formatter import render_return_form

__all__ = ["PrintResult", "PrinterDispatchService", "tcp_probe", "tcp_send", "HttpPrintClient", "render_return_form"]
