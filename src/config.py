import json
import logging
import os

from dotenv import load_dotenv


class _Config:
    DATABASE_URL: str

    LOG_LEVEL: int
    LOG_FILE: str | None

    IS_DEVELOPMENT: bool
    ADMIN_SECRET: str
    DEPOSIT_WEBHOOK_SECRET: str

    SOLANA_RPC_URL: str
    JUPITER_PRICE_API_URL: str
    TREASURY_ADDRESS: str
    REWARD_TOKEN_MINT: str
    SOL_TOKEN_MINT: str

    PRICE_PER_THOUSAND_CREDITS: float
    TIER_CONFIG: list[dict] | None

    TIER_CHECK_INTERVAL_SECONDS: int
    TIER_CHECK_RETRY_SECONDS: int
    PRICE_LOOKUP_TIMEOUT_SECONDS: float
    PRICE_MAX_STALENESS_SECONDS: int
    HOLDINGS_LOOKUP_TIMEOUT_SECONDS: float

    QUOTA_WINDOW_HOURS: int
    FREE_CREDITS_WINDOW_DAYS: int
    ACCOUNT_UPDATE_MAX_RETRIES: int
    DEPOSIT_RETRY_BASE_SECONDS: int
    DEPOSIT_RETRY_MAX_SECONDS: int

    def __init__(self):
        load_dotenv()
        self.DATABASE_URL = os.path.expandvars(os.getenv("DATABASE_URL", ""))

        # Configure logging
        log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_LEVEL = getattr(logging, log_level_str, logging.INFO)
        self.LOG_FILE = os.getenv("LOG_FILE", None)

        self.IS_DEVELOPMENT = os.getenv("IS_DEVELOPMENT", "False").lower() == "true"
        self.ADMIN_SECRET = os.getenv("ADMIN_SECRET", "")
        self.DEPOSIT_WEBHOOK_SECRET = os.getenv("DEPOSIT_WEBHOOK_SECRET", "")

        self.SOLANA_RPC_URL = os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com")
        self.JUPITER_PRICE_API_URL = os.getenv("JUPITER_PRICE_API_URL", "https://lite-api.jup.ag/price/v2")
        self.TREASURY_ADDRESS = os.getenv("TREASURY_ADDRESS", "")
        self.REWARD_TOKEN_MINT = os.getenv("REWARD_TOKEN_MINT", "DFQ9ejBt1T192Xnru1J21bFq9FSU7gjRRRYJkehvpump")
        self.SOL_TOKEN_MINT = os.getenv("SOL_TOKEN_MINT", "So11111111111111111111111111111111111111112")

        self.PRICE_PER_THOUSAND_CREDITS = float(os.getenv("PRICE_PER_THOUSAND_CREDITS", "1"))
        tier_config = os.getenv("TIER_CONFIG")
        self.TIER_CONFIG = json.loads(tier_config) if tier_config else None

        self.TIER_CHECK_INTERVAL_SECONDS = int(os.getenv("TIER_CHECK_INTERVAL_SECONDS", "3600"))
        self.TIER_CHECK_RETRY_SECONDS = int(os.getenv("TIER_CHECK_RETRY_SECONDS", "60"))
        self.PRICE_LOOKUP_TIMEOUT_SECONDS = float(os.getenv("PRICE_LOOKUP_TIMEOUT_SECONDS", "5"))
        self.PRICE_MAX_STALENESS_SECONDS = int(os.getenv("PRICE_MAX_STALENESS_SECONDS", "300"))
        self.HOLDINGS_LOOKUP_TIMEOUT_SECONDS = float(os.getenv("HOLDINGS_LOOKUP_TIMEOUT_SECONDS", "5"))

        self.QUOTA_WINDOW_HOURS = int(os.getenv("QUOTA_WINDOW_HOURS", "24"))
        self.FREE_CREDITS_WINDOW_DAYS = int(os.getenv("FREE_CREDITS_WINDOW_DAYS", "30"))
        self.ACCOUNT_UPDATE_MAX_RETRIES = int(os.getenv("ACCOUNT_UPDATE_MAX_RETRIES", "10"))
        self.DEPOSIT_RETRY_BASE_SECONDS = int(os.getenv("DEPOSIT_RETRY_BASE_SECONDS", "30"))
        self.DEPOSIT_RETRY_MAX_SECONDS = int(os.getenv("DEPOSIT_RETRY_MAX_SECONDS", "3600"))


config = _Config()
