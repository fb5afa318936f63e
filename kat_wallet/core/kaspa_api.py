"""
Kaspa REST API client.

Read-only access to address balances, KRC20 token balances and transaction
history, with exponential backoff on network failures.
"""

import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

import requests

from kat_wallet.core.errors import NetworkError
from kat_wallet.core.logger import log
from kat_wallet.core.networks import SOMPI_PER_KAS, Network


def sompi_to_kas(sompi: Union[int, str]) -> Decimal:
    """Convert an integer sompi amount to KAS."""
    return Decimal(int(sompi)) / SOMPI_PER_KAS


def format_kas(amount: Decimal) -> str:
    """Render a KAS amount without trailing zeros (``12.5``, ``0.00000001``)."""
    text = format(amount.quantize(Decimal(1) / SOMPI_PER_KAS), 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return text


class KaspaApiClient:
    """HTTP client for the public Kaspa REST API (one base URL per network)."""

    def __init__(
        self,
        base_urls: Dict[str, str],
        krc20_urls: Optional[Dict[str, str]] = None,
        timeout: float = 10,
        max_retries: int = 3,
        backoff_seconds: float = 1,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            base_urls: Kaspa REST base URL per network name
            krc20_urls: Kasplex KRC20 API base URL per network name (optional)
            timeout: Per-request timeout in seconds
            max_retries: Attempts per request before giving up
            backoff_seconds: First retry delay, doubled on every retry
            session: Optional requests session (shared connection pool)
        """
        self.base_urls = {str(k): v.rstrip('/') for k, v in base_urls.items()}
        self.krc20_urls = {str(k): v.rstrip('/') for k, v in (krc20_urls or {}).items()}
        self.timeout = timeout
        self.max_retries = max(int(max_retries), 1)
        self.backoff_seconds = backoff_seconds
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: dict) -> "KaspaApiClient":
        api_config = config.get('kaspa_api', {})
        return cls(
            base_urls=api_config.get('networks', {}),
            krc20_urls=api_config.get('krc20_networks', {}),
            timeout=api_config.get('timeout_seconds', 10),
            max_retries=api_config.get('max_retries', 3),
            backoff_seconds=api_config.get('backoff_seconds', 1)
        )

    def _base_url(self, network: Union[str, Network]) -> str:
        try:
            return self.base_urls[str(network)]
        except KeyError:
            raise NetworkError(f"No Kaspa API configured for network {network}")

    def _get_json(self, url: str, params: Optional[dict] = None, description: str = "request") -> Any:
        """
        GET a JSON document, retrying network failures with exponential backoff.

        Raises:
            NetworkError: All attempts failed
        """
        for attempt in range(self.max_retries):
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response.json()

            except requests.RequestException as e:
                status = getattr(getattr(e, 'response', None), 'status_code', None)
                # 4xx other than 429 is final
                if status is not None and 400 <= status < 500 and status != 429:
                    log.error(f"Kaspa API {description} rejected ({status}): {e}")
                    raise NetworkError(f"Kaspa API {description} failed: {e}") from e

                if attempt < self.max_retries - 1:
                    wait_time = self.backoff_seconds * (2 ** attempt)
                    log.warning(
                        f"Kaspa API {description} failed, retrying in {wait_time}s "
                        f"({attempt + 1}/{self.max_retries}): {e}"
                    )
                    time.sleep(wait_time)
                else:
                    log.error(f"Kaspa API {description} failed, max retries reached: {e}")
                    raise NetworkError(f"Kaspa API {description} failed: {e}") from e

    def get_balance(self, address: str, network: Union[str, Network]) -> Decimal:
        """
        Native KAS balance of an address.

        Args:
            address: Kaspa address
            network: Network the address lives on

        Returns:
            Balance in KAS
        """
        data = self._get_json(
            f"{self._base_url(network)}/addresses/{address}/balance",
            description="balance lookup"
        )
        return sompi_to_kas(data.get('balance', 0))

    def get_token_balances(self, address: str, network: Union[str, Network]) -> List[str]:
        """
        KRC20 token balances of an address, formatted ``"<amount> <TICK>"``.

        Returns an empty list when no KRC20 API is configured for the network.
        """
        base_url = self.krc20_urls.get(str(network))
        if not base_url:
            return []

        data = self._get_json(
            f"{base_url}/krc20/address/{address}/tokenlist",
            description="KRC20 token lookup"
        )
        balances = []
        for token in data.get('result') or []:
            decimals = int(token.get('dec', 8))
            amount = Decimal(int(token.get('balance', 0))) / (Decimal(10) ** decimals)
            balances.append(f"{format(amount.normalize(), 'f')} {token.get('tick', '?').upper()}")
        return balances

    def get_transactions(
        self,
        address: str,
        network: Union[str, Network],
        limit: int = 5
    ) -> List[Dict[str, Any]]:
        """
        Most recent transactions touching an address.

        Each entry has ``id``, ``amount`` (KAS string), ``type``
        (``Received``/``Sent``) and ``timestamp`` (UTC, ``YYYY-MM-DD HH:MM:SS``).
        """
        raw = self._get_json(
            f"{self._base_url(network)}/addresses/{address}/full-transactions",
            params={
                'limit': limit,
                'offset': 0,
                'resolve_previous_outpoints': 'light',
            },
            description="transaction history lookup"
        )
        return [self._summarize_transaction(tx, address) for tx in (raw or [])[:limit]]

    @staticmethod
    def _summarize_transaction(tx: Dict[str, Any], address: str) -> Dict[str, Any]:
        outputs = tx.get('outputs') or []
        inputs = tx.get('inputs') or []

        sent = any(i.get('previous_outpoint_address') == address for i in inputs)
        if sent:
            sompi = sum(int(o.get('amount', 0)) for o in outputs if o.get('script_public_key_address') != address)
        else:
            sompi = sum(int(o.get('amount', 0)) for o in outputs if o.get('script_public_key_address') == address)

        block_time = tx.get('block_time')
        timestamp = (
            datetime.fromtimestamp(int(block_time) / 1000, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
            if block_time else 'pending'
        )

        return {
            'id': tx.get('transaction_id', ''),
            'amount': format_kas(sompi_to_kas(sompi)),
            'type': 'Sent' if sent else 'Received',
            'timestamp': timestamp,
        }
