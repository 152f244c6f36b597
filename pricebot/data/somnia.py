"""Somnia Streams price reader."""

import asyncio
from typing import Any, Protocol

import structlog
from eth_abi import decode, encode
from web3 import AsyncWeb3, Web3

from ..core.interfaces import MetricSource
from ..core.types import FetchResult, Metric, PairFetchError, TrackedPair

logger = structlog.get_logger(__name__)

STREAM_ABI = [
    {
        "name": "get",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "schemaId", "type": "bytes32"},
            {"name": "dataKey", "type": "bytes32"},
        ],
        "outputs": [
            {"name": "encodedData", "type": "bytes"},
            {"name": "timestamp", "type": "uint64"},
        ],
    }
]

# Field layout of a published price record, in order.
PRICE_RECORD_TYPES = [
    "uint64",  # timestamp
    "string",  # baseSymbol
    "string",  # quoteSymbol
    "string",  # pairId
    "string",  # source
    "uint256",  # price
    "int256",  # delta
    "int256",  # deltaBps
    "address",  # priceFeed
    "uint8",  # feedDecimals
    "address",  # baseToken
    "address",  # quoteToken
]


def compute_data_key(base_address: str, quote_address: str, pair_id: str) -> bytes:
    """keccak256(abi.encode(base, quote, pairId)), the slot of one pair."""
    return bytes(
        Web3.keccak(
            encode(
                ["address", "address", "string"],
                [base_address, quote_address, pair_id],
            )
        )
    )


def parse_bytes32(value: str) -> bytes:
    """Parse a 0x-prefixed bytes32 hex string.

    Raises:
        ValueError: If value is not 32 bytes of hex
    """
    raw = Web3.to_bytes(hexstr=value)
    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)}: {value}")
    return raw


def decode_price_record(payload: bytes, fallback_timestamp: int = 0) -> Metric:
    """Decode an ABI-encoded price record into a Metric."""
    (
        timestamp,
        base_symbol,
        quote_symbol,
        pair_id,
        source,
        price,
        delta,
        delta_bps,
        price_feed,
        decimals,
        base_address,
        quote_address,
    ) = decode(PRICE_RECORD_TYPES, payload)

    return Metric(
        pair_id=pair_id,
        base_token=base_symbol,
        quote_token=quote_symbol,
        source=source,
        price=price,
        decimals=decimals,
        timestamp=timestamp or fallback_timestamp,
        price_delta=delta,
        price_delta_percent=delta_bps / 100,
        price_feed=price_feed,
        base_address=base_address,
        quote_address=quote_address,
    )


class StreamClient(Protocol):
    """Raw key-value read against the stream contract."""

    async def get(self, schema_id: bytes, data_key: bytes) -> tuple[bytes, int]:
        """Return (encodedData, timestamp) stored under data_key."""
        ...


class Web3StreamClient(StreamClient):
    """Stream contract client backed by web3's async HTTP provider."""

    def __init__(self, rpc_url: str, stream_address: str) -> None:
        """Initialize stream client.

        Args:
            rpc_url: Somnia JSON-RPC endpoint
            stream_address: Stream contract address
        """
        self.rpc_url = rpc_url
        self.stream_address = AsyncWeb3.to_checksum_address(stream_address)
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self.contract = self.w3.eth.contract(address=self.stream_address, abi=STREAM_ABI)

    async def get(self, schema_id: bytes, data_key: bytes) -> tuple[bytes, int]:
        encoded, timestamp = await self.contract.functions.get(
            schema_id, data_key
        ).call()
        return bytes(encoded), int(timestamp)


class SomniaStreamReader(MetricSource):
    """Reads the latest price record of each tracked pair."""

    def __init__(
        self,
        client: StreamClient,
        schema_id: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize reader.

        Args:
            client: Stream client performing the raw read
            schema_id: Schema identifier as bytes32 hex
            timeout_seconds: Timeout applied to each read call
        """
        self.client = client
        self.schema_id = parse_bytes32(schema_id)
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Any) -> "SomniaStreamReader":
        client = Web3StreamClient(
            rpc_url=settings.somnia_rpc_url,
            stream_address=settings.somnia_stream_address,
        )
        return cls(
            client=client,
            schema_id=settings.somnia_schema_id,
            timeout_seconds=settings.rpc_timeout_seconds,
        )

    async def fetch_pair(self, pair: TrackedPair) -> Metric | None:
        """Read one pair; None when the slot holds no data yet."""
        data_key = compute_data_key(pair.base_address, pair.quote_address, pair.pair_id)
        encoded, timestamp = await asyncio.wait_for(
            self.client.get(self.schema_id, data_key), timeout=self.timeout_seconds
        )
        if not encoded:
            return None
        return decode_price_record(encoded, fallback_timestamp=timestamp)

    async def fetch(self, pairs: list[TrackedPair]) -> FetchResult:
        """Fetch all pairs serially, collecting per-pair failures."""
        result = FetchResult()
        for pair in pairs:
            try:
                metric = await self.fetch_pair(pair)
            except Exception as e:
                logger.error(
                    "Stream read failed", pair_id=pair.pair_id, error=repr(e)
                )
                result.errors.append(PairFetchError(pair_id=pair.pair_id, error=repr(e)))
                continue

            if metric is None:
                logger.debug("No data for pair yet", pair_id=pair.pair_id)
                continue

            result.metrics.append(metric)

        logger.debug(
            "Fetched stream metrics",
            requested=len(pairs),
            fetched=len(result.metrics),
            failed=len(result.errors),
        )
        return result
