class TradingError(Exception):
    """Base class for errors raised by the trading core."""


class ExchangeError(TradingError):
    """
    Raised by exchange adapters when a call to the exchange fails
    (network, rate limit, rejected order, malformed payload).
    """


class AdvisoryError(TradingError):
    """
    Raised when the advisory service cannot produce a usable answer:
    missing credential, transport failure, or a response that does not
    match the expected schema.
    """
