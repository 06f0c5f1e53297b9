"""
Exceptions raised by the liquidation ledger export.

ConfigurationError and ProviderError end the run. OutputError is
recoverable: the caller decides whether to continue or abort.
"""


class KoinlyAccountingError(Exception):
    """Base exception for all custom exceptions"""

    def __init__(self, message: str, code: str = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ConfigurationError(KoinlyAccountingError):
    """Raised when a setting is missing/unparseable or a registry lookup misses"""
    pass


class ProviderError(KoinlyAccountingError):
    """Raised when logs, a block or a receipt cannot be fetched from the RPC"""
    pass


class ExplorerError(ProviderError):
    """Raised when the block explorer cannot resolve a timestamp"""
    pass


class OutputError(KoinlyAccountingError):
    """Raised when a sink cannot create or append to its destination"""
    pass
