"""
RPC Manager for Solana
JSON-RPC over HTTP (aiohttp) and program subscriptions over WebSocket with reconnection
"""

import asyncio
import base64
import json
import time
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import aiohttp
import websockets
from solders.hash import Hash
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from poolsniper.core.config import RPCConfig
from poolsniper.core.decoder import decode_account_data
from poolsniper.core.errors import DecodeError, FetchError, SubmissionError
from poolsniper.core.logger import get_logger
from poolsniper.core.metrics import LatencyTimer, get_metrics


logger = get_logger(__name__)
metrics = get_metrics()


class RPCManager:
    """
    Single-endpoint Solana RPC access

    Features:
    - Shared aiohttp session for HTTP JSON-RPC calls
    - One WebSocket per program subscription
    - Automatic resubscription with exponential backoff

    Usage:
        rpc = RPCManager(config.rpc_config)
        await rpc.start()
        balance = await rpc.get_token_account_balance(vault)
        async for notification in rpc.program_subscribe(program_id, filters):
            ...
        await rpc.stop()
    """

    def __init__(self, config: RPCConfig):
        """
        Initialize RPC manager

        Args:
            config: RPC configuration
        """
        self.config = config
        self._running = False
        self._http_session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0

        logger.info(
            "rpc_manager_initialized",
            url=config.url,
            websocket_url=config.websocket_url,
            commitment=config.commitment
        )

    @property
    def commitment(self) -> str:
        return self.config.commitment

    async def start(self) -> None:
        """Open the HTTP session"""
        if self._running:
            logger.warning("rpc_manager_already_running")
            return

        self._running = True
        self._http_session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_s)
        )
        logger.info("rpc_manager_started")

    async def stop(self) -> None:
        """Close the HTTP session and end all subscriptions"""
        if not self._running:
            return

        self._running = False
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

        logger.info("rpc_manager_stopped")

    async def call_http_rpc(self, method: str, params: List[Any]) -> Any:
        """
        Make an HTTP JSON-RPC call

        Args:
            method: JSON-RPC method name
            params: Method parameters

        Returns:
            The "result" member of the response

        Raises:
            FetchError: On transport failure or an RPC error response
        """
        if not self._http_session:
            raise FetchError("HTTP session not initialized. Call start() first.")

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params
        }

        try:
            with LatencyTimer(metrics, f"rpc_{method}"):
                async with self._http_session.post(self.config.url, json=payload) as response:
                    body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            metrics.increment_counter("rpc_errors", labels={"method": method})
            raise FetchError(f"{method} failed: {e}") from e

        if "error" in body:
            error = body["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            metrics.increment_counter("rpc_errors", labels={"method": method})
            raise FetchError(f"{method} RPC error: {message}")

        return body.get("result")

    async def get_account_info(
        self,
        account: Pubkey,
        data_slice: Optional[Tuple[int, int]] = None
    ) -> Optional[bytes]:
        """
        Fetch raw account data

        Args:
            account: Account address
            data_slice: Optional (offset, length) to fetch only part of the data

        Returns:
            Account bytes, or None if the account does not exist
        """
        options: Dict[str, Any] = {"encoding": "base64", "commitment": self.commitment}
        if data_slice is not None:
            options["dataSlice"] = {"offset": data_slice[0], "length": data_slice[1]}

        result = await self.call_http_rpc("getAccountInfo", [str(account), options])
        value = (result or {}).get("value")
        if not value:
            return None

        try:
            return decode_account_data(value.get("data"))
        except DecodeError as e:
            raise FetchError(f"getAccountInfo returned undecodable data for {account}: {e}") from e

    async def get_token_account_balance(self, account: Pubkey) -> int:
        """
        Raw token balance of a token account

        Raises:
            FetchError: If the RPC call fails or returns no value
        """
        result = await self.call_http_rpc(
            "getTokenAccountBalance",
            [str(account), {"commitment": self.commitment}]
        )
        value = (result or {}).get("value")
        if not value or value.get("amount") is None:
            raise FetchError(f"No token balance returned for {account}")
        return int(value["amount"])

    async def get_token_supply(self, mint: Pubkey) -> Optional[float]:
        """
        Total supply of a mint in UI units

        Returns:
            Supply, or None if the node returned no UI amount
        """
        result = await self.call_http_rpc(
            "getTokenSupply",
            [str(mint), {"commitment": self.commitment}]
        )
        value = (result or {}).get("value")
        if not value:
            return None
        ui_amount = value.get("uiAmount")
        return float(ui_amount) if ui_amount is not None else None

    async def get_latest_blockhash(self) -> Hash:
        """Latest blockhash at the configured commitment"""
        result = await self.call_http_rpc(
            "getLatestBlockhash",
            [{"commitment": self.commitment}]
        )
        try:
            return Hash.from_string(result["value"]["blockhash"])
        except (KeyError, TypeError, ValueError) as e:
            raise FetchError(f"Malformed getLatestBlockhash response: {e}") from e

    async def get_token_accounts_by_owner(self, owner: Pubkey) -> List[Tuple[Pubkey, bytes]]:
        """
        All SPL token accounts owned by a wallet

        Returns:
            List of (token account address, raw account bytes)
        """
        result = await self.call_http_rpc(
            "getTokenAccountsByOwner",
            [
                str(owner),
                {"programId": str(TOKEN_PROGRAM_ID)},
                {"encoding": "base64", "commitment": self.commitment}
            ]
        )

        accounts = []
        for entry in (result or {}).get("value", []):
            try:
                accounts.append((
                    Pubkey.from_string(entry["pubkey"]),
                    decode_account_data(entry["account"]["data"])
                ))
            except (KeyError, TypeError, ValueError, DecodeError) as e:
                logger.warning("token_account_entry_skipped", error=str(e))
        return accounts

    async def send_raw_transaction(
        self,
        tx_bytes: bytes,
        max_retries: int,
        skip_preflight: bool = False
    ) -> str:
        """
        Submit a signed, serialized transaction

        Args:
            tx_bytes: Serialized transaction
            max_retries: How many times the node should resend it
            skip_preflight: Skip node-side simulation

        Returns:
            Transaction signature

        Raises:
            SubmissionError: If the node rejects or the call fails
        """
        params = [
            base64.b64encode(tx_bytes).decode('utf-8'),
            {
                "encoding": "base64",
                "skipPreflight": skip_preflight,
                "preflightCommitment": self.commitment,
                "maxRetries": max_retries
            }
        ]

        try:
            signature = await self.call_http_rpc("sendTransaction", params)
        except FetchError as e:
            raise SubmissionError(str(e)) from e

        if not signature:
            raise SubmissionError("sendTransaction returned no signature")
        return signature

    async def program_subscribe(
        self,
        program_id: Pubkey,
        filters: List[Dict[str, Any]]
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Subscribe to account changes of a program

        Reconnects with exponential backoff when the socket drops, until
        stop() is called.

        Args:
            program_id: Program whose accounts to watch
            filters: dataSize / memcmp filters

        Yields:
            Notification "result" objects ({"context": ..., "value": {...}})
        """
        attempt = 0
        params = [
            str(program_id),
            {"encoding": "base64", "commitment": self.commitment, "filters": filters}
        ]

        while self._running:
            try:
                async with websockets.connect(
                    self.config.websocket_url,
                    ping_interval=20,
                    ping_timeout=10,
                    close_timeout=5
                ) as ws:
                    subscription_id = await self._open_subscription(ws, params)
                    attempt = 0

                    logger.info(
                        "subscription_created",
                        program=str(program_id),
                        subscription_id=subscription_id
                    )

                    async for message in ws:
                        if not self._running:
                            return
                        data = json.loads(message)
                        notification = data.get("params") or {}
                        if data.get("method") == "programNotification" and \
                                notification.get("subscription") == subscription_id:
                            yield notification.get("result") or {}

            except (websockets.exceptions.WebSocketException, OSError, asyncio.TimeoutError,
                    FetchError, ValueError, KeyError) as e:
                logger.warning(
                    "subscription_connection_lost",
                    program=str(program_id),
                    error=str(e)
                )
                metrics.increment_counter("subscription_reconnects")

            if not self._running:
                return

            backoff_ms = min(
                self.config.reconnect_backoff_base_ms * (2 ** attempt),
                self.config.reconnect_backoff_max_ms
            )
            attempt += 1
            logger.info(
                "resubscribing",
                program=str(program_id),
                attempt=attempt,
                backoff_seconds=backoff_ms / 1000
            )
            await asyncio.sleep(backoff_ms / 1000)

    async def _open_subscription(self, ws, params: List[Any]) -> int:
        """Send programSubscribe and wait for the subscription id"""
        self._request_id += 1
        request_id = self._request_id
        await ws.send(json.dumps({
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "programSubscribe",
            "params": params
        }))

        deadline = time.monotonic() + 10.0
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise FetchError("Timed out waiting for programSubscribe confirmation")

            response = json.loads(await asyncio.wait_for(ws.recv(), timeout=remaining))
            if response.get("id") != request_id:
                continue
            if "error" in response:
                raise FetchError(f"Subscription failed: {response['error']}")
            return response["result"]
