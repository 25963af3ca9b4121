from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector

from depthbook.errors import DecodeError

ERC20_ABI = [
    {
        "inputs": [],
        "name": "symbol",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def _canonical_type(param: dict) -> str:
    kind = param["type"]
    if kind.startswith("tuple"):
        inner = ",".join(_canonical_type(component) for component in param["components"])
        return f"({inner}){kind[len('tuple'):]}"
    return kind


@dataclass(frozen=True)
class AbiFunction:
    name: str
    input_types: Tuple[str, ...]
    output_types: Tuple[str, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, *args) -> bytes:
        return self.selector + encode(list(self.input_types), list(args))

    def decode_output(self, data: bytes) -> tuple:
        if not data:
            raise DecodeError(f"{self.name}() returned no data")
        try:
            return tuple(decode(list(self.output_types), bytes(data)))
        except (DecodingError, ValueError, TypeError, OverflowError) as exc:
            raise DecodeError(f"{self.name}() returned malformed data: {exc}") from exc


def function(abi: List[dict], name: str) -> AbiFunction:
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == name:
            return AbiFunction(
                name=name,
                input_types=tuple(_canonical_type(p) for p in entry.get("inputs", [])),
                output_types=tuple(_canonical_type(p) for p in entry.get("outputs", [])),
            )
    raise KeyError(f"function {name!r} not found in ABI")


ERC20_SYMBOL = function(ERC20_ABI, "symbol")
ERC20_DECIMALS = function(ERC20_ABI, "decimals")
