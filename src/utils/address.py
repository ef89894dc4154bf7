from solders.pubkey import Pubkey


def is_solana_address(address: str) -> bool:
    """Check if an address is a valid Solana address."""
    try:
        Pubkey.from_string(address)
        return True
    except Exception:
        return False


def validate_address(address: str) -> str:
    """
    Validates a Solana wallet address used as account identifier.

    Raises:
        ValueError: If the address isn't a valid base58 public key
    """
    if not is_solana_address(address):
        raise ValueError(f"Invalid address format: {address}. Must be a valid Solana address.")
    return address
