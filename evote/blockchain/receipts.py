"""
Recovering the address of a freshly deployed election contract.

The factory's ``createElection`` transaction does not reliably expose the new
contract address, so the receipt is scanned with several strategies, from the
most to the least specific. Callers fall back to diffing the factory's
deployment list when nothing here matches.
"""
import json
import logging
import re
from collections.abc import Mapping
from typing import Any, List, Optional

from evote.config import ZERO_ADDRESS

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
CREATED_RE = re.compile(r"\[.*?(0x[0-9a-fA-F]{40}).*?[Cc]reated.*?\]")


def _as_hex(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


def to_plain(obj: Any) -> Any:
    """Turn web3 AttributeDicts/HexBytes into JSON-friendly dicts and strings."""
    if isinstance(obj, Mapping):
        return {k: to_plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_plain(v) for v in obj]
    return _as_hex(obj)


def topic_to_address(topic: Optional[str]) -> Optional[str]:
    """The last 20 bytes of a 32-byte topic, when it looks like a padded address."""
    if not topic or len(topic) != 66 or topic[2:26].strip("0"):
        return None
    address = "0x" + topic[26:66]
    if ADDRESS_RE.match(address):
        return address
    return None


def _from_factory_logs(logs: List[dict], factory_address: str) -> Optional[str]:
    for log in logs:
        if (log.get("address") or "").lower() != factory_address.lower():
            continue
        topics = log.get("topics") or []
        if len(topics) >= 2:
            address = topic_to_address(topics[1])
            if address:
                return address
    return None


def _from_serialized_receipt(receipt: dict) -> Optional[str]:
    try:
        receipt_string = json.dumps(receipt, default=str)
    except (TypeError, ValueError) as e:
        logger.error(f"Error serializing receipt: {e}")
        return None
    match = CREATED_RE.search(receipt_string)
    return match.group(1) if match else None


def _single_foreign_address(logs: List[dict], factory_address: str) -> Optional[str]:
    seen = []
    for log in logs:
        address = log.get("address")
        if (
            address
            and address.lower() != factory_address.lower()
            and ADDRESS_RE.match(address)
        ):
            seen.append(address)
        for topic in log.get("topics") or []:
            address = topic_to_address(topic)
            if address:
                seen.append(address)

    candidates = []
    for address in seen:
        if address.lower() == ZERO_ADDRESS:
            continue
        if address.lower() not in [c.lower() for c in candidates]:
            candidates.append(address)

    if len(candidates) == 1:
        return candidates[0]
    if len(candidates) > 1:
        logger.info(f"Found multiple candidate addresses in logs: {candidates}")
    return None


def extract_contract_address(receipt: Any, factory_address: str) -> Optional[str]:
    """Best guess at the contract created by ``receipt``, or None."""
    plain = to_plain(receipt)
    logs = plain.get("logs") or []

    address = plain.get("contractAddress")
    if address:
        logger.info(f"Found contract address directly in receipt: {address}")
        return address

    address = _from_factory_logs(logs, factory_address)
    if address:
        logger.info(f"Found contract address in factory log topic: {address}")
        return address

    address = _from_serialized_receipt(plain)
    if address:
        logger.info(f"Found contract address via regex in receipt: {address}")
        return address

    address = _single_foreign_address(logs, factory_address)
    if address:
        logger.info(f"Found single candidate address in logs: {address}")
    return address


def new_deployments(before: List[str], after: List[str]) -> List[str]:
    known = {a.lower() for a in before}
    return [a for a in after if a.lower() not in known]
