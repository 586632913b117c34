"""
Error taxonomy.

Services raise these; a single handler in app.main turns them into
``{"error": message}`` responses with the class's status code.
"""


class MarketplaceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationMissing(MarketplaceError):
    status_code = 500


class InvalidSignature(MarketplaceError):
    status_code = 400


class InvalidPayload(MarketplaceError):
    status_code = 400


class AmountMismatch(MarketplaceError):
    status_code = 400


class NotPurchased(MarketplaceError):
    status_code = 403


class NotFound(MarketplaceError):
    status_code = 404


class InvalidState(MarketplaceError):
    status_code = 409


class LedgerWriteFailed(MarketplaceError):
    status_code = 500


class GatewayError(MarketplaceError):
    """The payment gateway rejected a request; message is the gateway's own."""

    status_code = 502


class EventNotReady(MarketplaceError):
    """A webhook refers to ledger state that is still being written; the gateway should redeliver."""

    status_code = 503
