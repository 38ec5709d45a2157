# waveorder/core/exceptions.py
"""Domain errors raised by the service layer and mapped to HTTP codes in the API."""


class WaveOrderError(Exception):
    """Base class for WaveOrder service errors"""


class NotFoundError(WaveOrderError):
    """A business or record referenced by the caller does not exist"""


class SyncInProgressError(WaveOrderError):
    """Another Stripe reconciliation holds the lock for this business"""


class ProcessorError(WaveOrderError):
    """The payment processor rejected or failed a request"""


class CustomerMissingError(ProcessorError):
    """The Stripe customer id stored locally does not exist at Stripe"""
