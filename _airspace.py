import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import _geo as geo
from _errors import (
    CeilingOrderError,
    DegenerateGeometryError,
    MissingReferenceError,
    ParserError,
    UnknownTokenError,
)
from _tokens import Altitude, Token, TokenKind

NM_IN_METERS = geo.UNITS["nauticalmiles"]
NM_IN_KM = NM_IN_METERS / geo.UNITS["kilometers"]


@dataclass
class Airspace:
    """Everything collected from one definition block, before it becomes a polygon."""

    name: Optional[str] = None
    airspace_class: Optional[str] = None
    upper_ceiling: Optional[Altitude] = None
    lower_ceiling: Optional[Altitude] = None
    coordinates: List[List[float]] = field(default_factory=list)
    consumed_tokens: List[Token] = field(default_factory=list)

    @property
    def first_line_number(self) -> Optional[int]:
        for token in self.consumed_tokens:
            if not token.is_ignored:
                return token.line_number
        return self.consumed_tokens[0].line_number if self.consumed_tokens else None


def find_token(
    tokens: Sequence[Token], index: int, kind: TokenKind, look_ahead: bool = False
) -> Optional[Token]:
    """Nearest token of ``kind`` after (look_ahead) or before ``index``, excluding index itself."""
    positions = range(index + 1, len(tokens)) if look_ahead else range(index - 1, -1, -1)
    for i in positions:
        if tokens[i].kind is kind:
            return tokens[i]
    return None


def _enforce_sane_limits(airspace: Airspace, line_number: int) -> None:
    upper, lower = airspace.upper_ceiling, airspace.lower_ceiling
    if upper is None or lower is None:
        return
    if lower.to_feet() > upper.to_feet():
        raise CeilingOrderError(
            f"Lower limit {lower.value} {lower.unit} must be less than upper limit "
            f"{upper.value} {upper.unit}",
            line_number=line_number,
        )


def _arc_center(tokens: Sequence[Token], index: int) -> List[float]:
    vx_token = find_token(tokens, index, TokenKind.VX)
    if vx_token is None:
        raise MissingReferenceError(
            "Preceding VX token not found.", line_number=tokens[index].line_number
        )
    return vx_token.metadata["coordinate"].as_list()


def _arc_clockwise(tokens: Sequence[Token], index: int) -> bool:
    # arcs are clockwise unless a V D=- says otherwise
    vd_token = find_token(tokens, index, TokenKind.VD)
    return True if vd_token is None else vd_token.metadata["clockwise"]


def arc_between(
    center: Sequence[float],
    start: Sequence[float],
    end: Sequence[float],
    clockwise: bool = True,
    steps: int = geo.DEFAULT_STEPS,
    line_number: Optional[int] = None,
) -> List[List[float]]:
    """
    Points of the arc around center from start to end in the given direction.

    Counter-clockwise arcs are built as the clockwise arc from end to start and
    then reversed. The radius is the distance from center to the point the
    clockwise walk starts at.
    """
    if not clockwise:
        start, end = end, start
    start_bearing = geo.bearing(center, start)
    end_bearing = geo.bearing(center, end)
    radius_km = geo.distance(center, start, units="kilometers")
    if math.isclose(radius_km, 0.0, abs_tol=1e-9):
        raise DegenerateGeometryError(
            "Arc radius resolves to zero, start point equals the center",
            line_number=line_number,
        )
    points = geo.arc(center, radius_km, start_bearing, end_bearing, steps=steps)
    if not clockwise:
        points.reverse()
    return points


def arc_by_bearings(
    center: Sequence[float],
    radius_nm: float,
    start_bearing: float,
    end_bearing: float,
    clockwise: bool = True,
    steps: int = geo.DEFAULT_STEPS,
    line_number: Optional[int] = None,
) -> List[List[float]]:
    if math.isclose(radius_nm, 0.0, abs_tol=1e-12):
        raise DegenerateGeometryError("Arc radius is zero", line_number=line_number)
    points = geo.arc(center, radius_nm * NM_IN_KM, start_bearing, end_bearing, steps=steps)
    if not clockwise:
        points.reverse()
    return points


# ============== Token handlers ==============
# handler(airspace, tokens, index, steps); tokens is the whole block


def _handle_ac(airspace, tokens, index, steps):
    airspace.airspace_class = tokens[index].metadata["class"]


def _handle_an(airspace, tokens, index, steps):
    airspace.name = tokens[index].metadata["name"]


def _handle_ah(airspace, tokens, index, steps):
    token = tokens[index]
    airspace.upper_ceiling = token.metadata["altitude"]
    _enforce_sane_limits(airspace, token.line_number)


def _handle_al(airspace, tokens, index, steps):
    token = tokens[index]
    airspace.lower_ceiling = token.metadata["altitude"]
    _enforce_sane_limits(airspace, token.line_number)


def _handle_dp(airspace, tokens, index, steps):
    token = tokens[index]
    coordinate = token.metadata.get("coordinate")
    if coordinate is None:
        raise ParserError("DP token without coordinate", line_number=token.line_number)
    airspace.coordinates.append(coordinate.as_list())


def _handle_dc(airspace, tokens, index, steps):
    token = tokens[index]
    center = _arc_center(tokens, index)
    radius_m = token.metadata["radius"] * NM_IN_METERS
    # a circle is the complete boundary, whatever was collected before is dropped
    airspace.coordinates = geo.circle(center, radius_m, steps=steps)


def _handle_db(airspace, tokens, index, steps):
    token = tokens[index]
    start, end = token.metadata["coordinates"]
    points = arc_between(
        _arc_center(tokens, index),
        start.as_list(),
        end.as_list(),
        clockwise=_arc_clockwise(tokens, index),
        steps=steps,
        line_number=token.line_number,
    )
    airspace.coordinates.extend(points)


def _handle_da(airspace, tokens, index, steps):
    token = tokens[index]
    arc_def = token.metadata["arc_def"]
    points = arc_by_bearings(
        _arc_center(tokens, index),
        arc_def.radius,
        arc_def.start_bearing,
        arc_def.end_bearing,
        clockwise=_arc_clockwise(tokens, index),
        steps=steps,
        line_number=token.line_number,
    )
    airspace.coordinates.extend(points)


def _no_op(airspace, tokens, index, steps):
    pass


_HANDLERS: Dict[TokenKind, Callable] = {
    TokenKind.AC: _handle_ac,
    TokenKind.AN: _handle_an,
    TokenKind.AH: _handle_ah,
    TokenKind.AL: _handle_al,
    TokenKind.DP: _handle_dp,
    TokenKind.VD: _no_op,  # looked up by the arc that follows
    TokenKind.VX: _no_op,
    TokenKind.DC: _handle_dc,
    TokenKind.DB: _handle_db,
    TokenKind.DA: _handle_da,
    TokenKind.COMMENT: _no_op,
    TokenKind.BLANK: _no_op,
    TokenKind.SKIPPED: _no_op,
    TokenKind.EOF: _no_op,
}


def build_airspace(tokens: Sequence[Token], geometry_detail: int = geo.DEFAULT_STEPS) -> Airspace:
    """
    Interpret the tokens of one block in order and return the collected airspace.

    Nothing is kept between calls, so blocks can be built from several threads.
    """
    tokens = tuple(tokens)
    airspace = Airspace()
    for index, token in enumerate(tokens):
        handler = _HANDLERS.get(token.kind)
        if handler is None:
            raise UnknownTokenError(
                f"Unknown token '{getattr(token.kind, 'value', token.kind)}'",
                line_number=token.line_number,
            )
        handler(airspace, tokens, index, geometry_detail)
        airspace.consumed_tokens.append(token)
    return airspace
