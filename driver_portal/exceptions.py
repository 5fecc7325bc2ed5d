"""
Exception hierarchy shared by the stores, the sync gateway and the printer.
"""


class PortalError(Exception):
    """Base class for driver portal errors"""
    pass


class ValidationError(PortalError):
    """Input rejected before any write is attempted"""
    pass


class AuthorizationError(PortalError):
    """Caller is not allowed to perform the action (e.g. PIN mismatch)"""
    pass


class AuthError(PortalError):
    """Sign-in or sign-up rejected by the identity provider"""
    pass


class IdentityProviderUnavailable(AuthError):
    """The identity provider could not be reached"""
    pass


class LocalStoreWriteError(PortalError):
    """The local cache could not persist a value (quota or I/O failure)"""
    pass


class RemoteStoreError(PortalError):
    """The remote document store rejected or could not complete a call"""
    pass


class PrintError(PortalError):
    """Base class for print dispatch failures"""
    pass


class PrinterNotFoundError(PrintError):
    """No device answered on the printer port during discovery"""

    def __init__(self, message: str = "No printer found on network"):
        super().__init__(message)


class PrintTransmissionError(PrintError):
    """The print job could not be written to the selected printer"""
    pass
