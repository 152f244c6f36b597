"""Tests for the Somnia stream reader."""

import asyncio

import pytest
from eth_abi import encode

from pricebot.core.types import TrackedPair
from pricebot.data.somnia import (
    PRICE_RECORD_TYPES,
    SomniaStreamReader,
    compute_data_key,
    decode_price_record,
    parse_bytes32,
)

SCHEMA_ID = "0x" + "11" * 32
FEED = "0x5f4ec3df9cbd43714fe2740f5e3616155c5b8419"


def make_pair(pair_id: str, index: int) -> TrackedPair:
    base, quote = pair_id.split("-")
    return TrackedPair(
        pair_id=pair_id,
        base_token=base,
        quote_token=quote,
        base_address=f"0x{2 * index - 1:040x}",
        quote_address=f"0x{2 * index:040x}",
    )


def encode_record(
    pair: TrackedPair,
    price: int,
    timestamp: int = 1_700_000_000,
    delta: int = 0,
    delta_bps: int = 0,
    decimals: int = 8,
) -> bytes:
    return encode(
        PRICE_RECORD_TYPES,
        [
            timestamp,
            pair.base_token,
            pair.quote_token,
            pair.pair_id,
            "Chainlink",
            price,
            delta,
            delta_bps,
            FEED,
            decimals,
            pair.base_address,
            pair.quote_address,
        ],
    )


class FakeStreamClient:
    """In-memory stream keyed by data key."""

    def __init__(self):
        self.slots: dict[bytes, tuple[bytes, int]] = {}
        self.failures: dict[bytes, Exception] = {}
        self.calls: list[tuple[bytes, bytes]] = []
        self.delay = 0.0

    def publish(self, pair: TrackedPair, payload: bytes, timestamp: int = 0) -> None:
        key = compute_data_key(pair.base_address, pair.quote_address, pair.pair_id)
        self.slots[key] = (payload, timestamp)

    def fail(self, pair: TrackedPair, error: Exception) -> None:
        key = compute_data_key(pair.base_address, pair.quote_address, pair.pair_id)
        self.failures[key] = error

    async def get(self, schema_id: bytes, data_key: bytes) -> tuple[bytes, int]:
        self.calls.append((schema_id, data_key))
        if self.delay:
            await asyncio.sleep(self.delay)
        if data_key in self.failures:
            raise self.failures[data_key]
        return self.slots.get(data_key, (b"", 0))


@pytest.fixture
def pairs():
    return [make_pair("ETH-USD", 1), make_pair("BTC-USD", 2), make_pair("LINK-USD", 3)]


@pytest.fixture
def client():
    return FakeStreamClient()


@pytest.fixture
def reader(client):
    return SomniaStreamReader(client=client, schema_id=SCHEMA_ID, timeout_seconds=1.0)


class TestDataKey:
    """Test data key derivation."""

    def test_deterministic(self, pairs):
        pair = pairs[0]
        first = compute_data_key(pair.base_address, pair.quote_address, pair.pair_id)
        second = compute_data_key(pair.base_address, pair.quote_address, pair.pair_id)

        assert first == second
        assert len(first) == 32

    def test_depends_on_every_component(self, pairs):
        pair = pairs[0]
        key = compute_data_key(pair.base_address, pair.quote_address, pair.pair_id)

        assert key != compute_data_key(pair.quote_address, pair.base_address, pair.pair_id)
        assert key != compute_data_key(pair.base_address, pair.quote_address, "ETH-USDT")


class TestParsing:
    """Test record decoding helpers."""

    def test_parse_bytes32(self):
        assert parse_bytes32(SCHEMA_ID) == b"\x11" * 32

    def test_parse_bytes32_wrong_length(self):
        with pytest.raises(ValueError, match="Expected 32 bytes"):
            parse_bytes32("0x1234")

    def test_decode_price_record(self, pairs):
        payload = encode_record(
            pairs[0], price=210_000_000_000, delta=10_000_000_000, delta_bps=500
        )

        metric = decode_price_record(payload)

        assert metric.pair_id == "ETH-USD"
        assert metric.base_token == "ETH"
        assert metric.quote_token == "USD"
        assert metric.source == "Chainlink"
        assert metric.price == 210_000_000_000
        assert metric.price_value == pytest.approx(2100.0)
        assert metric.price_delta == 10_000_000_000
        assert metric.price_delta_percent == pytest.approx(5.0)
        assert metric.decimals == 8
        assert metric.timestamp == 1_700_000_000
        assert metric.price_feed.lower() == FEED
        assert metric.base_address.lower() == pairs[0].base_address

    def test_decode_negative_delta(self, pairs):
        payload = encode_record(pairs[0], price=1, delta=-25, delta_bps=-125)

        metric = decode_price_record(payload)

        assert metric.price_delta == -25
        assert metric.price_delta_percent == pytest.approx(-1.25)

    def test_zero_timestamp_uses_fallback(self, pairs):
        payload = encode_record(pairs[0], price=1, timestamp=0)

        metric = decode_price_record(payload, fallback_timestamp=1_699_999_999)

        assert metric.timestamp == 1_699_999_999


class TestSomniaStreamReader:
    """Test batch fetching."""

    def test_rejects_bad_schema_id(self, client):
        with pytest.raises(ValueError):
            SomniaStreamReader(client=client, schema_id="0xabcd")

    @pytest.mark.asyncio
    async def test_fetch_all(self, reader, client, pairs):
        for i, pair in enumerate(pairs):
            client.publish(pair, encode_record(pair, price=(i + 1) * 10**8))

        result = await reader.fetch(pairs)

        assert result.ok
        assert [m.pair_id for m in result.metrics] == ["ETH-USD", "BTC-USD", "LINK-USD"]
        assert [m.price_value for m in result.metrics] == [1.0, 2.0, 3.0]
        assert all(call[0] == b"\x11" * 32 for call in client.calls)

    @pytest.mark.asyncio
    async def test_empty_slot_is_skipped_silently(self, reader, client, pairs):
        client.publish(pairs[0], encode_record(pairs[0], price=10**8))

        result = await reader.fetch(pairs)

        assert [m.pair_id for m in result.metrics] == ["ETH-USD"]
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_pair_failure_does_not_abort_batch(self, reader, client, pairs):
        client.publish(pairs[0], encode_record(pairs[0], price=10**8))
        client.fail(pairs[1], ConnectionError("rpc down"))
        client.publish(pairs[2], encode_record(pairs[2], price=3 * 10**8))

        result = await reader.fetch(pairs)

        assert [m.pair_id for m in result.metrics] == ["ETH-USD", "LINK-USD"]
        assert len(result.errors) == 1
        assert result.errors[0].pair_id == "BTC-USD"
        assert "rpc down" in result.errors[0].error
        assert len(client.calls) == 3

    @pytest.mark.asyncio
    async def test_undecodable_payload_is_reported(self, reader, client, pairs):
        client.publish(pairs[0], b"\x00\x01garbage")

        result = await reader.fetch(pairs[:1])

        assert result.metrics == []
        assert [e.pair_id for e in result.errors] == ["ETH-USD"]

    @pytest.mark.asyncio
    async def test_slow_read_times_out(self, client, pairs):
        client.delay = 0.5
        reader = SomniaStreamReader(client=client, schema_id=SCHEMA_ID, timeout_seconds=0.01)

        result = await reader.fetch(pairs[:1])

        assert result.metrics == []
        assert [e.pair_id for e in result.errors] == ["ETH-USD"]

    @pytest.mark.asyncio
    async def test_fetch_no_pairs(self, reader, client):
        result = await reader.fetch([])

        assert result.metrics == []
        assert client.calls == []
