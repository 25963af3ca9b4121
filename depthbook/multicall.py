from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, Sequence, TypeVar, Union

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from depthbook.abi import function
from depthbook.deadline import Deadline
from depthbook.errors import DecodeError, TransportError

logger = logging.getLogger(__name__)

MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"

MULTICALL3_ABI = [
    {
        "inputs": [
            {
                "components": [
                    {"internalType": "address", "name": "target", "type": "address"},
                    {"internalType": "bool", "name": "allowFailure", "type": "bool"},
                    {"internalType": "bytes", "name": "callData", "type": "bytes"},
                ],
                "internalType": "struct Multicall3.Call3[]",
                "name": "calls",
                "type": "tuple[]",
            }
        ],
        "name": "aggregate3",
        "outputs": [
            {
                "components": [
                    {"internalType": "bool", "name": "success", "type": "bool"},
                    {"internalType": "bytes", "name": "returnData", "type": "bytes"},
                ],
                "internalType": "struct Multicall3.Result[]",
                "name": "returnData",
                "type": "tuple[]",
            }
        ],
        "stateMutability": "payable",
        "type": "function",
    }
]

AGGREGATE3 = function(MULTICALL3_ABI, "aggregate3")

# web3 v6 reports JSON-RPC errors as ValueError, v7 as Web3RPCError
TRANSPORT_ERRORS = (requests.exceptions.RequestException, OSError, Web3Exception, ValueError)

T = TypeVar("T")


class EndpointRing(Generic[T]):
    """Equivalent RPC endpoints; a transport failure moves on to the next one.

    The position survives across queries, so a dead primary is not retried
    first every time.
    """

    def __init__(self, endpoints: Sequence[T]):
        if not endpoints:
            raise ValueError("at least one endpoint is required")
        self.endpoints = list(endpoints)
        self.index = 0

    def __len__(self) -> int:
        return len(self.endpoints)

    @property
    def current(self) -> T:
        return self.endpoints[self.index]

    def rotate(self) -> None:
        if len(self.endpoints) < 2:
            return
        self.index = (self.index + 1) % len(self.endpoints)
        logger.info("switching to rpc endpoint %d of %d", self.index + 1, len(self.endpoints))


@dataclass(frozen=True)
class Call:
    target: str
    call_data: bytes
    allow_failure: bool = True


@dataclass(frozen=True)
class CallResult:
    success: bool
    return_data: bytes


def with_retries(
    operation: Callable[[], T],
    retries: int,
    backoff: float,
    deadline: Optional[Deadline] = None,
    label: str = "request",
    rotate: Optional[Callable[[], None]] = None,
) -> T:
    """Run ``operation``, retrying transport failures with linear backoff.

    ``rotate`` is called after every failed attempt so the next one can go to
    another endpoint.
    """
    attempts = retries + 1
    for attempt in range(1, attempts + 1):
        if deadline is not None:
            deadline.check(label)
        try:
            return operation()
        except TransportError as exc:
            if attempt == attempts:
                raise TransportError(f"{label} failed after {attempts} attempts: {exc.reason}") from exc
            logger.warning("%s failed (attempt %d/%d): %s", label, attempt, attempts, exc.reason)
            if rotate is not None:
                rotate()
            delay = backoff * attempt
            if deadline is not None:
                delay = min(delay, deadline.remaining())
            if delay > 0:
                time.sleep(delay)
    raise TransportError(f"{label} was never attempted")


class MulticallClient:
    def __init__(
        self,
        web3: Union[Web3, EndpointRing[Web3]],
        address: str = MULTICALL3_ADDRESS,
        batch_size: int = 200,
        retries: int = 2,
        backoff: float = 0.5,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.endpoints = web3 if isinstance(web3, EndpointRing) else EndpointRing([web3])
        self.address = Web3.to_checksum_address(address)
        self.batch_size = batch_size
        # every endpoint gets at least one attempt
        self.retries = max(retries, len(self.endpoints) - 1)
        self.backoff = backoff

    @property
    def web3(self) -> Web3:
        return self.endpoints.current

    def aggregate3(self, calls: Sequence[Call]) -> List[CallResult]:
        """Run one aggregate3 round trip; results are aligned with ``calls``."""
        if not calls:
            return []
        payload = AGGREGATE3.encode_call(
            [(Web3.to_checksum_address(c.target), c.allow_failure, c.call_data) for c in calls]
        )
        (results,) = AGGREGATE3.decode_output(self._eth_call(payload))
        if len(results) != len(calls):
            raise DecodeError(f"aggregate3 returned {len(results)} results for {len(calls)} calls")
        return [CallResult(success=bool(success), return_data=bytes(data)) for success, data in results]

    def batched_call(self, calls: Sequence[Call], deadline: Optional[Deadline] = None) -> List[CallResult]:
        results: List[CallResult] = []
        for start in range(0, len(calls), self.batch_size):
            batch = calls[start : start + self.batch_size]
            results.extend(
                with_retries(
                    lambda: self.aggregate3(batch),
                    self.retries,
                    self.backoff,
                    deadline,
                    label=f"multicall batch of {len(batch)}",
                    rotate=self.endpoints.rotate,
                )
            )
        failed = sum(1 for r in results if not r.success)
        if failed:
            logger.debug("%d of %d multicall entries failed", failed, len(results))
        return results

    def _eth_call(self, data: bytes) -> bytes:
        try:
            return bytes(self.web3.eth.call({"to": self.address, "data": "0x" + data.hex()}))
        except ContractLogicError as exc:
            raise DecodeError(f"aggregate3 reverted: {exc}") from exc
        except TRANSPORT_ERRORS as exc:
            raise TransportError(f"eth_call to {self.address} failed: {exc}") from exc
