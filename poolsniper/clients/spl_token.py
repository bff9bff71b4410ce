"""
SPL Token helpers
Associated token accounts, mint renouncement and token-account parsing
"""

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from spl.token.instructions import (
    create_idempotent_associated_token_account,
    get_associated_token_address,
)

from poolsniper.clients.layouts import ACCOUNT_LAYOUT, MINT_LAYOUT


def associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """Deterministic token account for (owner, mint)"""
    return get_associated_token_address(owner, mint)


def create_ata_idempotent_instruction(payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    """Create the associated token account, no-op when it already exists"""
    return create_idempotent_associated_token_account(payer, owner, mint)


def is_mint_renounced(mint_data: bytes) -> bool:
    """
    Whether the mint authority has been removed

    Raises:
        DecodeError: If the bytes are not a mint account
    """
    return MINT_LAYOUT.decode(mint_data)["mint_authority_option"] == 0


def token_account_mint(account_data: bytes) -> Pubkey:
    """Mint of a token account"""
    return ACCOUNT_LAYOUT.decode(account_data)["mint"]
