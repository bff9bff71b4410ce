"""
Trading wallet
Loads the keypair and finds the wallet's existing token accounts
"""

from typing import List, Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from poolsniper.clients.spl_token import token_account_mint
from poolsniper.core.config import QuoteToken
from poolsniper.core.errors import ConfigError, DecodeError
from poolsniper.core.logger import get_logger
from poolsniper.core.models import TokenAccountRecord
from poolsniper.core.rpc_manager import RPCManager


logger = get_logger(__name__)


def load_keypair(private_key: str) -> Keypair:
    """
    Load a keypair from a base58 encoded 64-byte secret

    Raises:
        ConfigError: If the secret is not a valid keypair
    """
    try:
        secret = base58.b58decode(private_key.strip())
    except ValueError:
        raise ConfigError("Invalid wallet private key: not base58") from None

    if len(secret) != 64:
        raise ConfigError(f"Invalid wallet private key: expected 64 bytes, got {len(secret)}")

    try:
        return Keypair.from_bytes(secret)
    except ValueError:
        raise ConfigError("Invalid wallet private key: public half does not match secret") from None


class Wallet:
    """
    Wallet keypair plus the token account it pays quote tokens from

    Usage:
        wallet = Wallet(keypair, quote_token)
        existing = await wallet.initialize(rpc)
    """

    def __init__(self, keypair: Keypair, quote_token: QuoteToken):
        self.keypair = keypair
        self.quote_token = quote_token
        self.quote_token_account: Optional[Pubkey] = None

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    async def initialize(self, rpc: RPCManager) -> List[TokenAccountRecord]:
        """
        Scan the wallet's token accounts and locate the quote account

        Returns:
            One record per token account found (for seeding the cache)

        Raises:
            ConfigError: If the wallet holds no account for the quote mint
        """
        logger.info("wallet_loaded", address=str(self.pubkey))

        records = []
        for address, data in await rpc.get_token_accounts_by_owner(self.pubkey):
            try:
                mint = token_account_mint(data)
            except DecodeError as e:
                logger.warning("token_account_undecodable", address=str(address), error=str(e))
                continue
            records.append(TokenAccountRecord(mint=mint, address=address))

        quote = next((r for r in records if r.mint == self.quote_token.mint), None)
        if quote is None:
            raise ConfigError(
                f"No {self.quote_token.symbol} token account found in wallet: {self.pubkey}"
            )

        self.quote_token_account = quote.address
        logger.info(
            "quote_token_account_found",
            symbol=self.quote_token.symbol,
            address=str(quote.address),
            token_accounts=len(records)
        )
        return records
