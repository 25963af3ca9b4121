from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from web3 import Web3

from depthbook.abi import AbiFunction
from depthbook.deadline import Deadline
from depthbook.errors import DecodeError, TransportError
from depthbook.multicall import TRANSPORT_ERRORS, Call, CallResult, EndpointRing, MulticallClient, with_retries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadRequest:
    address: str
    fn: AbiFunction
    args: tuple = ()


class ChainReader:
    """Typed contract reads for one query, routed through Multicall3."""

    def __init__(self, web3: Web3, multicall: MulticallClient, deadline: Optional[Deadline] = None):
        self.web3 = web3
        self.multicall = multicall
        self.deadline = deadline

    def read(self, address: str, fn: AbiFunction, *args) -> tuple:
        (value,) = self.read_many([ReadRequest(address, fn, args)])
        if value is None:
            raise DecodeError(f"{fn.name}() on {address} reverted or returned malformed data")
        return value

    def read_many(self, requests: Sequence[ReadRequest]) -> List[Optional[tuple]]:
        calls = [Call(target=r.address, call_data=r.fn.encode_call(*r.args)) for r in requests]
        results = self.multicall.batched_call(calls, deadline=self.deadline)
        return [self._decode(request, result) for request, result in zip(requests, results)]

    def probe(self, address: str, fn: AbiFunction, *args) -> bool:
        try:
            self.read(address, fn, *args)
        except DecodeError:
            return False
        return True

    def _decode(self, request: ReadRequest, result: CallResult) -> Optional[tuple]:
        if not result.success:
            logger.debug("%s%s on %s reverted", request.fn.name, request.args, request.address)
            return None
        try:
            return request.fn.decode_output(result.return_data)
        except DecodeError as exc:
            logger.debug("skipping %s on %s: %s", request.fn.name, request.address, exc.reason)
            return None


@dataclass(frozen=True)
class SolanaAccount:
    address: str
    owner: str
    data: bytes


ACCOUNT_OPTIONS = {"encoding": "base64", "commitment": "confirmed"}
# getMultipleAccounts accepts at most 100 keys
MAX_MULTIPLE_ACCOUNTS = 100


class SolanaAccountReader:
    """Raw account data over Solana JSON-RPC, using web3 HTTP providers as transport.

    Accounts are memoized for the life of the reader, which is one query, so
    dispatch and the adapter can both look at the pool account for one read.
    """

    def __init__(self, provider, deadline: Optional[Deadline] = None, retries: int = 2, backoff: float = 0.5):
        self.endpoints = provider if isinstance(provider, EndpointRing) else EndpointRing([provider])
        self.deadline = deadline
        self.retries = max(retries, len(self.endpoints) - 1)
        self.backoff = backoff
        self._accounts: Dict[str, SolanaAccount] = {}

    def account(self, address: str) -> SolanaAccount:
        if address not in self._accounts:
            result = self._call("getAccountInfo", [address, ACCOUNT_OPTIONS], address)
            self._accounts[address] = parse_account(address, (result or {}).get("value"))
        return self._accounts[address]

    def account_data(self, address: str) -> bytes:
        return self.account(address).data

    def accounts(self, addresses: Sequence[str]) -> List[Optional[SolanaAccount]]:
        """Accounts aligned with ``addresses``; None where the account does not exist."""
        missing = [a for a in dict.fromkeys(addresses) if a not in self._accounts]
        for start in range(0, len(missing), MAX_MULTIPLE_ACCOUNTS):
            chunk = missing[start : start + MAX_MULTIPLE_ACCOUNTS]
            result = self._call("getMultipleAccounts", [chunk, ACCOUNT_OPTIONS], f"{len(chunk)} accounts")
            values = (result or {}).get("value") or []
            if len(values) != len(chunk):
                raise DecodeError(f"getMultipleAccounts returned {len(values)} accounts for {len(chunk)} keys")
            for address, value in zip(chunk, values):
                if value:
                    self._accounts[address] = parse_account(address, value)
        return [self._accounts.get(a) for a in addresses]

    def program_accounts(self, program_id: str, filters: Sequence[dict] = ()) -> List[SolanaAccount]:
        options = dict(ACCOUNT_OPTIONS, filters=list(filters))
        result = self._call("getProgramAccounts", [program_id, options], program_id)
        if not isinstance(result, list):
            raise DecodeError(f"getProgramAccounts {program_id} returned {type(result).__name__}")
        try:
            return [parse_account(entry["pubkey"], entry["account"]) for entry in result]
        except (KeyError, TypeError) as exc:
            raise DecodeError(f"getProgramAccounts {program_id} has unexpected shape") from exc

    def _call(self, method: str, params: list, label: str):
        response = with_retries(
            lambda: self._request(method, params),
            self.retries,
            self.backoff,
            self.deadline,
            label=f"{method} {label}",
            rotate=self.endpoints.rotate,
        )
        if response.get("error"):
            raise DecodeError(f"{method} {label} failed: {response['error']}")
        return response.get("result")

    def _request(self, method: str, params: list) -> dict:
        try:
            return self.endpoints.current.make_request(method, params)
        except TRANSPORT_ERRORS as exc:
            raise TransportError(f"solana rpc request failed: {exc}") from exc


def parse_account(address: str, value) -> SolanaAccount:
    if not value:
        raise DecodeError(f"account {address} not found")
    try:
        encoded, encoding = value["data"]
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"account {address} has unexpected data shape") from exc
    if encoding != "base64":
        raise DecodeError(f"account {address} returned {encoding} data")
    return SolanaAccount(address=address, owner=value.get("owner", ""), data=base64.b64decode(encoded))
