"""Recognition and normalization of payable identifiers."""

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse

from ..errors import InvalidPayableIdentifierError

LIGHTNING_URI_PREFIX = "lightning:"
MIN_LNURL_LENGTH = 20

_LNURL_PATTERN = re.compile(r"^lnurl1[02-9ac-hj-np-z]+$")
_ADDRESS_PATTERN = re.compile(
    r"^(?P<user>[a-z0-9._+-]+)@(?P<domain>[a-z0-9-]+(\.[a-z0-9-]+)+)(:\d+)?$"
)


class IdentifierKind(Enum):
    LNURL = "lnurl"
    LIGHTNING_ADDRESS = "lightning_address"
    URL = "url"


@dataclass(frozen=True)
class PayableIdentifier:
    """A normalized payable identifier.

    ``value`` is what gets handed to the engine; ``url`` is the resolvable
    endpoint when it is known without decoding.
    """

    kind: IdentifierKind
    value: str
    url: str = ""

    @property
    def domain(self) -> str:
        if self.kind is IdentifierKind.LIGHTNING_ADDRESS:
            return self.value.split("@", 1)[1]
        if self.url:
            return urlparse(self.url).hostname or ""
        return ""


def strip_lightning_prefix(raw: str) -> str:
    text = raw.strip()
    if text.lower().startswith(LIGHTNING_URI_PREFIX):
        text = text[len(LIGHTNING_URI_PREFIX):].lstrip("/")
    return text


def lightning_address_url(address: str) -> str:
    """``user@domain`` to its LNURL-pay well-known URL."""
    match = _ADDRESS_PATTERN.match(address.lower())
    if not match:
        raise InvalidPayableIdentifierError(address)
    user, host = address.lower().split("@", 1)
    return f"https://{host}/.well-known/lnurlp/{user}"


def is_lnurl(text: str) -> bool:
    text = text.strip().lower()
    return len(text) >= MIN_LNURL_LENGTH and bool(_LNURL_PATTERN.match(text))


def normalize_payable_identifier(raw: str) -> PayableIdentifier:
    """Classify and normalize a user-supplied payment destination.

    Accepts ``lightning:`` URIs, bech32 LNURL strings (any case), lightning
    addresses and https LNURL-pay URLs.

    Raises:
        InvalidPayableIdentifierError: nothing recognizable was supplied.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidPayableIdentifierError(str(raw))

    text = strip_lightning_prefix(raw)
    lowered = text.lower()

    if lowered.startswith("lnurl"):
        if not is_lnurl(lowered):
            raise InvalidPayableIdentifierError(raw)
        return PayableIdentifier(IdentifierKind.LNURL, lowered)

    if "@" in text and "://" not in text:
        return PayableIdentifier(
            IdentifierKind.LIGHTNING_ADDRESS, lowered, lightning_address_url(lowered)
        )

    parsed = urlparse(text)
    if parsed.scheme == "https" and parsed.hostname:
        return PayableIdentifier(IdentifierKind.URL, text, text)
    if parsed.scheme == "http" and parsed.hostname and parsed.hostname.endswith(".onion"):
        return PayableIdentifier(IdentifierKind.URL, text, text)

    raise InvalidPayableIdentifierError(raw)
