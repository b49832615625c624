import logging
import re
from typing import Iterable, List, Optional

import parsimonious
from parsimonious.exceptions import ParseError, VisitationError

from _errors import TokenizeError
from _tokens import (
    FEET_PER_METER,
    Altitude,
    ArcDef,
    Coordinate,
    Token,
    TokenKind,
    eof_token,
)

logger = logging.getLogger(__name__)

DEFAULT_AIRSPACE_CLASSES = (
    "R",
    "Q",
    "P",
    "A",
    "B",
    "C",
    "D",
    "E",
    "F",
    "G",
    "GP",
    "W",
    "CTR",
    "TMZ",
    "RMZ",
    "GSEC",
    "UKN",
)
ALTITUDE_UNITS = ("FT", "M")

# Everything after a '*' on a record line is a comment, e.g. "DP 52:24:00 N 013:11:00 E * tower"
INLINE_COMMENT_RE = re.compile(r"\s?\*.*")


line_grammar = parsimonious.Grammar(
    r"""
    # One OpenAIR record per line. Lines are stripped and freed of inline comments
    # before they get here, so every rule must consume the complete line.
    line = comment / blank / ac_line / an_line / ah_line / al_line / dp_line
         / vd_line / vx_line / dc_line / db_line / da_line / skipped_line

    comment = ~r"\*.*"
    blank = ~r"\s*$"

    ac_line = "AC" __ text
    an_line = "AN" __ text
    ah_line = "AH" __ altitude _
    al_line = "AL" __ altitude _
    dp_line = "DP" __ coordinate
    vd_line = "V" _ "D" _ "=" _ direction _
    vx_line = "V" _ "X" _ "=" _ coordinate
    dc_line = "DC" __ number _
    db_line = "DB" __ coordinate "," coordinate
    da_line = "DA" __ number _ "," _ number _ "," _ number _
    # labels, airway, pens and brushes: recognised but not rendered
    skipped_line = ~r"(A[TYFGI]|T[OC]|S[PB]|DY)(\s.*)?$" / ~r"V\s*[WZ]\s*=.*"

    # GND / SFC / UNL must not swallow the start of a longer word
    altitude = unlimited / surface / flight_level / height
    unlimited = ~r"UNL(IMITED|IM|TD)?(?![A-Z])"i
    surface = ~r"(GND|SFC)(?![A-Z])"i
    flight_level = ~r"FL"i _ number
    height = number _ unit? _ datum?
    unit = ~r"(FT|F|M)(?![A-Z])"i
    datum = ~r"(AMSL|MSL|AGL|GND|SFC|ASFC|AAL)(?![A-Z])"i

    coordinate = _ latitude _ ","? _ longitude _
    latitude = angle _ lat_hemisphere
    longitude = angle _ lon_hemisphere
    # DD, DD:MM or DD:MM:SS, every part may carry decimals
    angle = ~r"[0-9]+(\.[0-9]+)?(:[0-9]+(\.[0-9]+)?){0,2}"
    lat_hemisphere = ~r"[NS]"i
    lon_hemisphere = ~r"[EW]"i

    direction = ~r"[+-]"
    number = ~r"-?([0-9]+(\.[0-9]*)?|\.[0-9]+)"
    text = ~r".+"
    _ = ~r"[ \t]*"
    __ = ~r"[ \t]+"
    """
)


def _as_number(value: float):
    return int(value) if float(value).is_integer() else value


class OpenairLineVisitor(parsimonious.NodeVisitor):
    """Turns the parse tree of a single OpenAIR line into ``(TokenKind, metadata)``."""

    grammar = line_grammar
    # range checks raise ValueError; let them through instead of wrapping in VisitationError
    unwrapped_exceptions = (ValueError,)

    def __init__(
        self,
        airspace_classes: Iterable[str] = DEFAULT_AIRSPACE_CLASSES,
        unlimited: int = 999,
        default_alt_unit: str = "ft",
        target_alt_unit: str = "ft",
        round_alt_values: bool = False,
    ):
        self.airspace_classes = {c.upper() for c in airspace_classes}
        self.unlimited = unlimited
        self.default_alt_unit = default_alt_unit.upper()
        self.target_alt_unit = target_alt_unit.upper()
        self.round_alt_values = round_alt_values
        super().__init__()

    def visit_simple_regex(self, node, _):
        return node.match.group(0)

    visit_direction = visit_simple_regex

    def visit_text(self, node, _):
        return node.text.strip()

    def visit_upper(self, node, _):
        return node.text.upper()

    visit_unit = visit_upper
    visit_datum = visit_upper
    visit_lat_hemisphere = visit_upper
    visit_lon_hemisphere = visit_upper

    def visit_number(self, node, _):
        return float(node.text)

    def generic_visit(self, _, visited_children):
        return visited_children

    def visit_line(self, _, visited_children):
        return visited_children[0]

    def visit_comment(self, *_):
        return TokenKind.COMMENT, {}

    def visit_blank(self, *_):
        return TokenKind.BLANK, {}

    def visit_skipped_line(self, *_):
        return TokenKind.SKIPPED, {}

    # ---- A records ----

    def visit_ac_line(self, _, visited_children):
        airspace_class = visited_children[2].upper()
        if airspace_class not in self.airspace_classes:
            raise ValueError(f"Unknown airspace class '{airspace_class}'")
        return TokenKind.AC, {"class": airspace_class}

    def visit_an_line(self, _, visited_children):
        return TokenKind.AN, {"name": visited_children[2]}

    def visit_ah_line(self, _, visited_children):
        return TokenKind.AH, {"altitude": visited_children[2]}

    def visit_al_line(self, _, visited_children):
        return TokenKind.AL, {"altitude": visited_children[2]}

    def visit_altitude(self, _, visited_children):
        return visited_children[0]

    def visit_unlimited(self, *_):
        return Altitude(self.unlimited, "FL", "STD")

    def visit_surface(self, *_):
        return Altitude(0, self.target_alt_unit, "GND")

    def visit_flight_level(self, _, visited_children):
        return Altitude(_as_number(visited_children[2]), "FL", "STD")

    def visit_height(self, _, visited_children):
        value, _, unit, _, datum = visited_children
        if value < 0:
            raise ValueError(f"Negative altitude {value}")
        unit = unit[0] if unit else self.default_alt_unit
        unit = "FT" if unit in ("F", "FT") else "M"
        datum = datum[0] if datum else "MSL"
        datum = "MSL" if datum in ("MSL", "AMSL") else "GND"

        if unit != self.target_alt_unit:
            value = value / FEET_PER_METER if unit == "FT" else value * FEET_PER_METER
            unit = self.target_alt_unit
        if self.round_alt_values:
            value = round(value)
        return Altitude(_as_number(value), unit, datum)

    # ---- D and V records ----

    def visit_angle(self, node, _):
        parts = [float(p) for p in node.text.split(":")]
        degrees, minutes, seconds = (parts + [0.0, 0.0])[:3]
        if minutes >= 60 or seconds >= 60:
            raise ValueError(f"Bad minutes/seconds in '{node.text}'")
        return degrees + minutes / 60.0 + seconds / 3600.0

    def visit_latitude(self, _, visited_children):
        deg, _, hemi = visited_children
        if deg > 90:
            raise ValueError(f"Latitude {deg} out of range")
        return -deg if hemi == "S" else deg

    def visit_longitude(self, _, visited_children):
        deg, _, hemi = visited_children
        if deg > 180:
            raise ValueError(f"Longitude {deg} out of range")
        return -deg if hemi == "W" else deg

    def visit_coordinate(self, _, visited_children):
        return Coordinate(lon=visited_children[5], lat=visited_children[1])

    def visit_dp_line(self, _, visited_children):
        return TokenKind.DP, {"coordinate": visited_children[2]}

    def visit_vd_line(self, _, visited_children):
        return TokenKind.VD, {"clockwise": visited_children[6] == "+"}

    def visit_vx_line(self, _, visited_children):
        return TokenKind.VX, {"coordinate": visited_children[6]}

    def visit_dc_line(self, _, visited_children):
        radius = visited_children[2]
        if radius <= 0:
            raise ValueError(f"Circle radius must be positive, got {radius}")
        return TokenKind.DC, {"radius": radius}

    def visit_db_line(self, _, visited_children):
        return TokenKind.DB, {"coordinates": (visited_children[2], visited_children[4])}

    def visit_da_line(self, _, visited_children):
        radius, start, end = visited_children[2], visited_children[6], visited_children[10]
        if radius < 0:
            raise ValueError(f"Arc radius must not be negative, got {radius}")
        return TokenKind.DA, {"arc_def": ArcDef(radius, start, end)}


def tokenize_line(line: str, line_number: int, visitor: OpenairLineVisitor) -> Token:
    """Classify a single source line. Raises TokenizeError if the line is not understood."""
    text = line.strip()
    if not text.startswith("*"):
        text = INLINE_COMMENT_RE.sub("", text).strip()
    try:
        kind, metadata = visitor.parse(text)
    except (ParseError, VisitationError, ValueError) as e:
        detail = str(e)
        if isinstance(e, ParseError):
            detail = f"unexpected input at column {e.pos + 1}"
        raise TokenizeError(
            f"Cannot parse '{line.strip()}': {detail}",
            line_number=line_number,
            original=e,
        ) from e
    return Token(kind, line_number, line.rstrip("\r\n"), metadata)


def tokenize(
    text: str,
    *,
    airspace_classes: Optional[Iterable[str]] = None,
    unlimited: int = 999,
    default_alt_unit: str = "ft",
    target_alt_unit: str = "ft",
    round_alt_values: bool = False,
) -> List[Token]:
    """Split OpenAIR text into one token per line, followed by an EOF token."""
    visitor = OpenairLineVisitor(
        airspace_classes=airspace_classes or DEFAULT_AIRSPACE_CLASSES,
        unlimited=unlimited,
        default_alt_unit=default_alt_unit,
        target_alt_unit=target_alt_unit,
        round_alt_values=round_alt_values,
    )
    lines = text.splitlines()
    tokens = [tokenize_line(ln, i, visitor) for i, ln in enumerate(lines, start=1)]
    tokens.append(eof_token(len(lines) + 1))
    logger.debug(f"Tokenized {len(lines)} lines")
    return tokens
