"""Replay fingerprint normalization.

Clients have used three fingerprint formats over time. Each version maps to
one strategy: how to turn the raw value into the stored form, which column it
is compared against, and whether a hit may trigger a relay upload.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict


class FingerprintVersion(str, Enum):
    """Fingerprint formats accepted by the check endpoints."""

    V1 = "v1"
    V2 = "v2"
    V3 = "v3"


# V2 clients serialized the third group with its two bytes swapped
_V2_SWAP_PATTERN = re.compile(r"^(\w+)-(\w+)-(\w{2})(\w{2})-", re.ASCII)


def swap_v2_bytes(raw: str) -> str:
    """Swap the two bytes of the third group (``A-B-CCDD-...`` -> ``A-B-DDCC-...``).

    Values that do not have that shape are returned unchanged. The swap is
    its own inverse.
    """
    return _V2_SWAP_PATTERN.sub(r"\1-\2-\4\3-", raw, count=1)


def _identity(raw: str) -> str:
    return raw


@dataclass(frozen=True)
class FingerprintStrategy:
    """How one fingerprint version is normalized and looked up."""

    transform: Callable[[str], str]
    column: str
    relay_eligible: bool


STRATEGIES: Dict[FingerprintVersion, FingerprintStrategy] = {
    FingerprintVersion.V3: FingerprintStrategy(_identity, "fingerprint", True),
    FingerprintVersion.V2: FingerprintStrategy(swap_v2_bytes, "fingerprint", True),
    FingerprintVersion.V1: FingerprintStrategy(_identity, "fingerprint_old", False),
}


def normalize(raw: str, version: FingerprintVersion) -> str:
    """Return the stored form of ``raw`` for the given format version."""
    return STRATEGIES[version].transform(raw)


def lookup_column(version: FingerprintVersion) -> str:
    """Name of the replay column a fingerprint of this version is compared to."""
    return STRATEGIES[version].column


def relay_eligible(version: FingerprintVersion) -> bool:
    return STRATEGIES[version].relay_eligible
