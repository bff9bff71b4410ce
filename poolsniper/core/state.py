"""
Process-scoped sniper state
Everything the concurrent notification handlers share
"""

from dataclasses import dataclass, field

from poolsniper.core.dedup import DeduplicationStore
from poolsniper.core.eligibility import CycleState
from poolsniper.core.token_accounts import TokenAccountCache


@dataclass
class SniperState:
    """
    Shared mutable state, created once at startup and passed explicitly

    Attributes:
        cache: Wallet token accounts keyed by mint
        cycle: Buy counter for the current cycle
        start_timestamp: Unix seconds the listener started at
        dedup: Pool and market ids already dispatched
    """
    cache: TokenAccountCache
    cycle: CycleState
    start_timestamp: int
    dedup: DeduplicationStore = field(default_factory=DeduplicationStore)
