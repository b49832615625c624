from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, NamedTuple, Optional

FEET_PER_METER = 1 / 0.3048


class TokenKind(Enum):
    AC = "AC"  # airspace class, starts a definition block
    AN = "AN"  # name
    AH = "AH"  # upper limit
    AL = "AL"  # lower limit
    DP = "DP"  # polygon point
    VD = "VD"  # V D=+/- arc direction
    VX = "VX"  # V X= arc/circle center
    DC = "DC"  # circle
    DB = "DB"  # arc between two points
    DA = "DA"  # arc by radius and bearings
    COMMENT = "COMMENT"
    BLANK = "BLANK"
    SKIPPED = "SKIPPED"  # recognised records we do not render (AT, SP, SB, ...)
    EOF = "EOF"


IGNORED_KINDS: FrozenSet[TokenKind] = frozenset(
    {TokenKind.COMMENT, TokenKind.BLANK, TokenKind.SKIPPED}
)

_LIMITS = frozenset({TokenKind.AN, TokenKind.AH, TokenKind.AL})
_AFTER_LIMITS = _LIMITS | {TokenKind.DP, TokenKind.VD, TokenKind.VX}
_AFTER_ARC = frozenset(
    {
        TokenKind.DP,
        TokenKind.VD,
        TokenKind.VX,
        TokenKind.DB,
        TokenKind.DA,
        TokenKind.AC,
        TokenKind.EOF,
    }
)

# Kinds that may directly follow a kind once ignored tokens are skipped.
ALLOWED_NEXT: Mapping[TokenKind, FrozenSet[TokenKind]] = MappingProxyType(
    {
        TokenKind.AC: _LIMITS,
        TokenKind.AN: _AFTER_LIMITS,
        TokenKind.AH: _AFTER_LIMITS,
        TokenKind.AL: _AFTER_LIMITS,
        TokenKind.DP: frozenset(
            {TokenKind.DP, TokenKind.VD, TokenKind.VX, TokenKind.AC, TokenKind.EOF}
        ),
        TokenKind.VD: frozenset(
            {TokenKind.VX, TokenKind.DP, TokenKind.DB, TokenKind.DA}
        ),
        TokenKind.VX: frozenset(
            {TokenKind.VD, TokenKind.DC, TokenKind.DB, TokenKind.DA}
        ),
        TokenKind.DC: frozenset({TokenKind.AC, TokenKind.EOF}),
        TokenKind.DB: _AFTER_ARC,
        TokenKind.DA: _AFTER_ARC,
        TokenKind.EOF: frozenset({TokenKind.EOF}),
        # ignored kinds never take part in adjacency checks
        TokenKind.COMMENT: frozenset(),
        TokenKind.BLANK: frozenset(),
        TokenKind.SKIPPED: frozenset(),
    }
)


class Coordinate(NamedTuple):
    lon: float
    lat: float

    def as_list(self):
        return [self.lon, self.lat]


class ArcDef(NamedTuple):
    radius: float  # nautical miles
    start_bearing: float
    end_bearing: float


@dataclass(frozen=True)
class Altitude:
    value: float
    unit: str  # 'FT' | 'FL' | 'M'
    reference_datum: str  # 'MSL' | 'GND' | 'STD'

    def to_feet(self) -> float:
        """Value in feet; flight levels are taken as hundreds of feet."""
        if self.unit == "FL":
            return self.value * 100
        if self.unit == "M":
            return self.value * FEET_PER_METER
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "unit": self.unit,
            "referenceDatum": self.reference_datum,
        }


@dataclass(frozen=True, eq=False)
class Token:
    kind: TokenKind
    line_number: int
    raw_line: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # freeze the metadata as well, tokens are shared between blocks and threads
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def is_ignored(self) -> bool:
        return self.kind in IGNORED_KINDS

    @property
    def allowed_next(self) -> Optional[FrozenSet[TokenKind]]:
        """Kinds allowed to follow this token, None if the kind has no rule."""
        return ALLOWED_NEXT.get(self.kind)

    def is_allowed_next(self, other: "Token") -> bool:
        allowed = self.allowed_next
        return allowed is not None and other.kind in allowed


def eof_token(line_number: int) -> Token:
    return Token(TokenKind.EOF, line_number, "")
