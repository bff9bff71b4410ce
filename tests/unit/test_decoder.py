"""
Unit tests for Account Decoder (core/decoder.py)
"""

import base64

import pytest
from solders.pubkey import Pubkey

from poolsniper.core.decoder import AccountDecoder, decode_account_data, parse_keyed_account
from poolsniper.core.errors import DecodeError


@pytest.fixture
def decoder() -> AccountDecoder:
    return AccountDecoder()


class TestDecodeAccountData:
    """Test RPC account data extraction"""

    def test_base64_pair(self):
        assert decode_account_data([base64.b64encode(b"abc").decode(), "base64"]) == b"abc"

    def test_invalid_base64_raises(self):
        with pytest.raises(DecodeError):
            decode_account_data(["not base64!!", "base64"])

    def test_unsupported_encoding_raises(self):
        with pytest.raises(DecodeError):
            decode_account_data("3xyz")

    def test_parse_keyed_account(self, make_notification):
        account_id = Pubkey.new_unique()
        result = make_notification(account_id, b"\x01\x02")

        parsed_id, data = parse_keyed_account(result["value"])

        assert parsed_id == account_id
        assert data == b"\x01\x02"

    def test_parse_keyed_account_missing_pubkey(self):
        with pytest.raises(DecodeError):
            parse_keyed_account({"account": {"data": ["", "base64"]}})


class TestDecodePool:
    """Test pool decoding"""

    def test_decode_round_trips_record(self, decoder, make_pool, encode_pool):
        pool = make_pool(open_time=1_712_000_000, base_decimals=9)

        decoded = decoder.decode_pool(pool.id, encode_pool(pool))

        assert decoded == pool

    def test_short_data_raises(self, decoder):
        with pytest.raises(DecodeError):
            decoder.decode_pool(Pubkey.new_unique(), bytes(700))


class TestDecodeMarket:
    """Test market decoding"""

    def test_decode_market(self, decoder, make_market, encode_market):
        market = make_market()

        decoded = decoder.decode_market(market.id, encode_market(market))

        assert decoded.base_mint == market.base_mint
        assert decoded.quote_mint == market.quote_mint
        assert decoded.bids == market.bids
        assert decoded.asks == market.asks
        assert decoded.event_queue == market.event_queue

    def test_bad_head_raises(self, decoder, make_market, encode_market):
        market = make_market()

        with pytest.raises(DecodeError, match="head/tail"):
            decoder.decode_market(market.id, encode_market(market, head=b"xxxxx"))

    def test_bad_tail_raises(self, decoder, make_market, encode_market):
        market = make_market()

        with pytest.raises(DecodeError):
            decoder.decode_market(market.id, encode_market(market, tail=b"nopadng"))

    def test_wrong_length_raises(self, decoder):
        with pytest.raises(DecodeError):
            decoder.decode_market(Pubkey.new_unique(), bytes(96))

    def test_decode_minimal_market(self, decoder):
        market_id = Pubkey.new_unique()
        event_queue, bids, asks = Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique()

        market = decoder.decode_minimal_market(market_id, bytes(event_queue) + bytes(bids) + bytes(asks))

        assert market.id == market_id
        assert market.event_queue == event_queue
        assert market.bids == bids
        assert market.asks == asks
        assert market.base_mint is None
