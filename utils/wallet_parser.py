"""
Wallet file ingestion.

Each parser variant takes the raw file text and returns either a list of
WalletRecord or None when the text is not in its format. ``parse_wallets``
tries them in priority order and keeps the first answer.
"""
import json
import logging
import re
from typing import Callable, List, Optional, Sequence, Tuple

from eth_account import Account

from core.models import WalletRecord

logger = logging.getLogger(__name__)

_ADDR_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PRIV_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")

WalletParser = Callable[[str], Optional[List[WalletRecord]]]


def is_address(value) -> bool:
    return isinstance(value, str) and bool(_ADDR_RE.match(value.strip()))


def is_private_key(value) -> bool:
    return isinstance(value, str) and bool(_PRIV_RE.match(value.strip()))


def _pair_from_items(items: Sequence) -> Optional[WalletRecord]:
    """[address, key] in either order, told apart by length."""
    if len(items) < 2:
        return None
    first, second = items[0], items[1]
    if is_address(first) and is_private_key(second):
        return WalletRecord(public_address=first.strip(), private_key=second.strip())
    if is_private_key(first) and is_address(second):
        return WalletRecord(public_address=second.strip(), private_key=first.strip())
    return None


def _record_from_object(item: dict) -> Optional[WalletRecord]:
    address = item.get("publicKey") or item.get("address")
    key = item.get("privateKey") or item.get("private_key")
    if is_address(address) and is_private_key(key):
        return WalletRecord(public_address=address.strip(), private_key=key.strip())
    return None


def parse_json_document(text: str) -> Optional[List[WalletRecord]]:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, list):
        return None

    wallets: List[WalletRecord] = []
    for index, item in enumerate(data):
        record = None
        if isinstance(item, (list, tuple)):
            record = _pair_from_items(item)
        elif isinstance(item, dict):
            record = _record_from_object(item)
        if record is None:
            logger.warning("Entry %d has invalid format, skipping", index)
            continue
        wallets.append(record)
    return wallets


def parse_json_lines(text: str) -> Optional[List[WalletRecord]]:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return None
    wallets: List[WalletRecord] = []
    for line in lines:
        if not (line.startswith("[") and line.endswith("]")):
            return None
        try:
            parsed = json.loads(line)
        except ValueError:
            return None
        record = _pair_from_items(parsed) if isinstance(parsed, list) else None
        if record is None:
            return None
        wallets.append(record)
    return wallets


def _derive_address(private_key: str) -> str:
    return Account.from_key(private_key).address


def parse_delimited_text(text: str) -> Optional[List[WalletRecord]]:
    """
    Lines like ``0xaddr - 0xkey`` (any number of '-' separated items).
    Keys with no matching address get their address derived locally.
    """
    wallets: List[WalletRecord] = []
    matched_any = False
    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        items = [s.strip() for s in line.split("-") if s.strip()]
        keys = [s for s in items if is_private_key(s)]
        addrs = [s for s in items if is_address(s)]

        if keys and addrs:
            matched_any = True
            for addr, key in zip(addrs, keys):
                wallets.append(WalletRecord(public_address=addr, private_key=key))
        elif keys:
            matched_any = True
            for key in keys:
                try:
                    wallets.append(WalletRecord(public_address=_derive_address(key), private_key=key))
                except Exception as err:
                    logger.warning("Line %d - invalid private key (%s)", line_no, err)
        else:
            logger.warning("Line %d has invalid format, skipping", line_no)
    return wallets if matched_any else None


PARSERS: Tuple[Tuple[str, WalletParser], ...] = (
    ("json_document", parse_json_document),
    ("json_lines", parse_json_lines),
    ("delimited_text", parse_delimited_text),
)


def parse_wallets(text: str) -> List[WalletRecord]:
    for name, parser in PARSERS:
        wallets = parser(text)
        if wallets is not None:
            logger.debug("Parsed %d wallet(s) as %s", len(wallets), name)
            return wallets
    return []


def load_wallet_records(path: str, start: Optional[int] = None, end: Optional[int] = None) -> List[WalletRecord]:
    with open(path, "r", encoding="utf-8-sig") as f:
        text = f.read()
    return parse_wallets(text)[start:end]
