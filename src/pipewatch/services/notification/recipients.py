"""Email recipient parsing and sanitization."""

import re
from typing import Iterable, List, Optional, Union

_SEPARATORS = re.compile(r"[,;\s]+")
_ADDRESS = re.compile(
    r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@"
    r"(?:[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,}$"
)


def split_recipients(raw: Union[str, Iterable[str], None]) -> List[str]:
    """Split a comma/semicolon/whitespace separated string (or list of them)."""
    if not raw:
        return []
    chunks = [raw] if isinstance(raw, str) else list(raw)
    parts: List[str] = []
    for chunk in chunks:
        parts.extend(piece for piece in _SEPARATORS.split(str(chunk)) if piece)
    return parts


def is_blocked_domain(domain: str, blocked_domains: Iterable[str]) -> bool:
    """
    Match a domain against the denylist.

    Entries starting with ``.`` match as suffixes (``.test`` blocks
    ``d.test``); other entries match the domain itself and its subdomains.
    """
    domain = domain.lower()
    for entry in blocked_domains:
        entry = entry.strip().lower()
        if not entry:
            continue
        if entry.startswith("."):
            if domain.endswith(entry):
                return True
        elif domain == entry or domain.endswith("." + entry):
            return True
    return False


def sanitize_recipients(
    raw: Union[str, Iterable[str], None],
    blocked_domains: Optional[Iterable[str]] = None,
    blocked_addresses: Optional[Iterable[str]] = None,
) -> List[str]:
    """
    Drop malformed, denylisted and duplicate addresses.

    Args:
        raw: Recipient string or list as stored on the alert
        blocked_domains: Local/test-only domains to refuse
        blocked_addresses: Specific addresses to refuse

    Returns:
        Valid recipients in their original order
    """
    blocked_domains = list(blocked_domains or [])
    blocked = {address.strip().lower() for address in blocked_addresses or []}

    recipients: List[str] = []
    seen = set()
    for candidate in split_recipients(raw):
        address = candidate.strip().strip("<>")
        if not _ADDRESS.match(address):
            continue

        lowered = address.lower()
        if lowered in blocked or lowered in seen:
            continue
        if is_blocked_domain(lowered.rsplit("@", 1)[1], blocked_domains):
            continue

        seen.add(lowered)
        recipients.append(address)

    return recipients
