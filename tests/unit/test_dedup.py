"""
Unit tests for Deduplication Store (core/dedup.py)
"""

from solders.pubkey import Pubkey

from poolsniper.core.dedup import DeduplicationStore, SeenSet


class TestSeenSet:

    def test_mark_then_has_seen(self):
        seen = SeenSet()
        key = str(Pubkey.new_unique())

        assert seen.has_seen(key) is False
        seen.mark_seen(key)
        assert seen.has_seen(key) is True
        assert len(seen) == 1

    def test_check_and_mark_only_first_time(self):
        seen = SeenSet()
        key = str(Pubkey.new_unique())

        assert seen.check_and_mark(key) is True
        assert seen.check_and_mark(key) is False
        assert seen.has_seen(key) is True

    def test_accepts_pubkeys(self):
        seen = SeenSet()
        key = Pubkey.new_unique()

        seen.mark_seen(key)

        assert seen.has_seen(str(key)) is True


def test_pool_and_market_sets_are_independent():
    store = DeduplicationStore()
    key = str(Pubkey.new_unique())

    store.pools.mark_seen(key)

    assert store.pools.has_seen(key) is True
    assert store.markets.has_seen(key) is False
