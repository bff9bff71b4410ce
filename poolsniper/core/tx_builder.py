"""
Transaction Builder for Pool Sniper
Prepends compute-budget instructions, compiles a v0 message and signs it
"""

from typing import List, Sequence

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from poolsniper.core.config import TransactionConfig
from poolsniper.core.logger import get_logger
from poolsniper.core.metrics import get_metrics


logger = get_logger(__name__)
metrics = get_metrics()


# Solana transaction size limit in bytes
MAX_TRANSACTION_SIZE = 1232


class TransactionBuilder:
    """
    Builds signed versioned transactions with a compute budget

    Usage:
        builder = TransactionBuilder(config.transaction_config)
        tx = builder.build_transaction([swap_ix], payer=keypair, recent_blockhash=blockhash)
    """

    def __init__(self, config: TransactionConfig):
        self.config = config

    def compute_budget_instructions(self) -> List[Instruction]:
        """Unit limit and unit price instructions from config"""
        return [
            set_compute_unit_limit(self.config.compute_unit_limit),
            set_compute_unit_price(self.config.compute_unit_price),
        ]

    def build_transaction(
        self,
        instructions: Sequence[Instruction],
        payer: Keypair,
        recent_blockhash: Hash,
    ) -> VersionedTransaction:
        """
        Build and sign a v0 transaction

        Args:
            instructions: Instructions to run after the compute budget
            payer: Fee payer, also the only signer
            recent_blockhash: Recent blockhash from RPC

        Returns:
            Signed VersionedTransaction

        Raises:
            ValueError: If the serialized transaction exceeds the size limit
        """
        all_instructions = self.compute_budget_instructions() + list(instructions)

        message = MessageV0.try_compile(
            payer.pubkey(),
            all_instructions,
            [],
            recent_blockhash
        )
        tx = VersionedTransaction(message, [payer])

        tx_size = len(bytes(tx))
        if tx_size > MAX_TRANSACTION_SIZE:
            raise ValueError(f"Transaction size {tx_size} exceeds limit {MAX_TRANSACTION_SIZE}")

        metrics.increment_counter("transactions_built")
        logger.debug(
            "transaction_built",
            instruction_count=len(all_instructions),
            tx_size_bytes=tx_size
        )
        return tx
