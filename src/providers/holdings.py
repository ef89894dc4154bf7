from solana.rpc.api import Client
from solana.rpc.types import TokenAccountOpts
from solders.pubkey import Pubkey

from src.config import config
from src.interfaces.errors import ExternalLookupTimeoutError
from src.utils.logger import setup_logger

logger = setup_logger(__name__)


class HoldingsProvider:
    """Reward token balances of wallets, read from Solana token accounts."""

    def __init__(
        self,
        rpc_url: str = config.SOLANA_RPC_URL,
        mint: str = config.REWARD_TOKEN_MINT,
        timeout: float = config.HOLDINGS_LOOKUP_TIMEOUT_SECONDS,
    ):
        self.client = Client(rpc_url, timeout=timeout)
        self.mint = Pubkey.from_string(mint)

    def token_balance(self, address: str) -> float:
        """
        Get the reward token balance of a wallet, summed over all its token accounts for the mint.

        Raises:
            ExternalLookupTimeoutError: If the RPC call fails, times out or returns an unexpected payload
        """
        try:
            response = self.client.get_token_accounts_by_owner_json_parsed(
                Pubkey.from_string(address), TokenAccountOpts(mint=self.mint)
            )

            balance = 0.0
            for keyed_account in response.value:
                parsed = keyed_account.account.data.parsed
                ui_amount = parsed["info"]["tokenAmount"].get("uiAmount")
                balance += float(ui_amount or 0)
        except Exception as e:
            logger.warning(f"Holdings lookup error for {address}: {e}")
            raise ExternalLookupTimeoutError(address, str(e))

        return balance


holdings_provider = HoldingsProvider()
