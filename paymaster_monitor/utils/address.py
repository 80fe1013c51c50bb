from typing import Iterable

from eth_utils import is_address, to_checksum_address

from paymaster_monitor.typing import Address


def normalize_address(address: str) -> Address:
    """Checksummed form, addresses are only compared after this."""
    if not is_address(address):
        raise ValueError(f"Invalid address value : {address}")
    return Address(to_checksum_address(address))


def normalize_addresses(addresses: Iterable[str]) -> set[Address]:
    return {normalize_address(address) for address in addresses}
