# Import all models here to ensure proper initialization order

# First import the base model
from src.models.base import Base

# Then the entries attached to an account
from src.models.deposit import Deposit
from src.models.usage_record import UsageRecord

# Finally the account itself, which references both
from src.models.account import Account

# This ensures all models are loaded and SQLAlchemy can properly establish relationships
__all__ = [
    "Base",
    "Account",
    "Deposit",
    "UsageRecord",
]
