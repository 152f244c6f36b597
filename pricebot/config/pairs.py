"""Built-in list of tracked pairs.

Base and quote addresses are placeholders that only serve to derive the
stream data key; they must match what the publisher uses.
"""

from ..core.types import TrackedPair

DEFAULT_TRACKED_PAIRS: list[TrackedPair] = [
    TrackedPair(
        pair_id="SOM-USDT",
        base_token="SOM",
        quote_token="USDT",
        base_address="0x0000000000000000000000000000000000000001",
        quote_address="0x0000000000000000000000000000000000000002",
        feed="0xaEAa92c38939775d3be39fFA832A92611f7D6aDe",
        network="somnia",
    ),
    TrackedPair(
        pair_id="ETH-USD",
        base_token="ETH",
        quote_token="USD",
        base_address="0x0000000000000000000000000000000000000003",
        quote_address="0x0000000000000000000000000000000000000004",
        feed="0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419",
        network="ethereum",
    ),
    TrackedPair(
        pair_id="BTC-USD",
        base_token="BTC",
        quote_token="USD",
        base_address="0x0000000000000000000000000000000000000005",
        quote_address="0x0000000000000000000000000000000000000006",
        feed="0xF4030086522a5bEEa4988F8cA5B36dbC97BeE88c",
        network="ethereum",
    ),
    TrackedPair(
        pair_id="LINK-USD",
        base_token="LINK",
        quote_token="USD",
        base_address="0x0000000000000000000000000000000000000007",
        quote_address="0x0000000000000000000000000000000000000008",
        feed="0x2c1d072e956AFFC0D435Cb7AC38EF18d24d9127c",
        network="ethereum",
    ),
]


def resolve_pair_ids(
    requested: list[str], pairs: list[TrackedPair]
) -> tuple[list[str], list[str]]:
    """Map user-supplied ids to canonical pair ids, case-insensitively.

    Returns:
        Tuple of (resolved ids in request order without duplicates, unknown ids)
    """
    canonical = {pair.pair_id.lower(): pair.pair_id for pair in pairs}
    resolved: list[str] = []
    unknown: list[str] = []
    for item in requested:
        match = canonical.get(item.lower())
        if match is None:
            unknown.append(item)
        elif match not in resolved:
            resolved.append(match)
    return resolved, unknown
