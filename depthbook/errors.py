"""Error taxonomy for depth queries.

Transport, deadline and unsupported-protocol errors abort a query and reach
the caller. Decode errors are handled where they occur: a failed call is
skipped, and an adapter that cannot decode its pool returns an empty
``DepthData`` carrying the reason.
"""


class EngineError(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class TransportError(EngineError):
    """The chain endpoint could not be reached or timed out."""


class DeadlineExceededError(TransportError):
    """The overall query deadline elapsed before the book was assembled."""


class DecodeError(EngineError):
    """Return data was missing, reverted or did not match the expected ABI."""


class LiquidityImbalanceError(DecodeError):
    def __init__(self, imbalance: int):
        super().__init__(f"liquidityNet deltas sum to {imbalance}, expected 0")
        self.imbalance = imbalance


class UnsupportedProtocolError(EngineError):
    """No adapter matches the pool's declared tag or structural signature."""
