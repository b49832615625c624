import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence

from shapely.geometry import Polygon, mapping

import _geo as geo
from _airspace import Airspace
from _errors import (
    GeometryInvalidError,
    GeometryRepairError,
    InsufficientGeometryError,
    ParserError,
)

logger = logging.getLogger(__name__)

# points closer than this to an earlier point are dropped before repairing
DUPLICATE_TOLERANCE_M = 200.0
REPAIR_BUFFER_M = 0.1


@dataclass(frozen=True)
class Feature:
    geometry: Polygon
    properties: Mapping[str, Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_geojson(self) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "id": self.id,
            "geometry": mapping(self.geometry),
            "properties": dict(self.properties),
        }


class RepairResult(NamedTuple):
    polygon: Polygon
    method: str  # 'unkink' | 'envelope'


def feature_collection(features: Iterable[Feature]) -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": [f.to_geojson() for f in features]}


def remove_near_duplicates(
    coordinates: Sequence[Sequence[float]], tolerance_m: float = DUPLICATE_TOLERANCE_M
) -> List[List[float]]:
    """Keep a point only if no earlier kept point lies within tolerance_m of it."""
    kept: List[List[float]] = []
    for coord in coordinates:
        if any(geo.distance(k, coord, units="meters") < tolerance_m for k in kept):
            continue
        kept.append(list(coord))
    return kept


def _largest_part(parts: Iterable[Polygon]) -> Polygon:
    # kinks are assumed to be small, the largest face is the airspace
    largest = None
    largest_area = None
    for part in parts:
        part_area = geo.area(part)
        if largest_area is None or part_area >= largest_area:
            largest, largest_area = part, part_area
    return largest


def _unkinked(coordinates: Sequence[Sequence[float]]) -> Polygon:
    polygon = geo.line_to_polygon(remove_near_duplicates(coordinates))
    largest = _largest_part(geo.unkink_into_parts(polygon))
    repaired = geo.buffer_by_meters(largest, REPAIR_BUFFER_M)
    if not isinstance(repaired, Polygon) or repaired.is_empty:
        raise ValueError(f"Buffered boundary is a {repaired.geom_type}, not a polygon")
    return repaired


def repair_polygon(
    coordinates: Sequence[Sequence[float]], line_number: Optional[int] = None
) -> RepairResult:
    """
    Turn a possibly broken ring into a valid, simple polygon.

    This ALTERS the shape: near-duplicate points are dropped, self-intersections are
    resolved by keeping the largest face only, and the result is buffered by a tenth
    of a meter. If that fails the bounding envelope of all points is returned, which
    still contains the original extent but may differ a lot from it.
    """
    try:
        return RepairResult(_unkinked(coordinates), "unkink")
    except geo.GEOMETRY_ERRORS as e:
        logger.debug(f"Unkinking airspace on line {line_number} failed ({e}), using envelope")

    try:
        return RepairResult(geo.envelope_of(coordinates), "envelope")
    except geo.GEOMETRY_ERRORS as e:
        raise GeometryRepairError(
            f"Cannot repair geometry: {e}", line_number=line_number, original=e
        ) from e


def validate_polygon(polygon: Polygon, name: Optional[str], line_number: Optional[int]) -> None:
    is_valid = geo.is_valid_polygon(polygon)
    is_simple = geo.is_simple_polygon(polygon)
    crossing = geo.self_intersection_point(polygon)

    if crossing is not None:
        raise GeometryInvalidError(
            f"Geometry of airspace '{name}' starting on line {line_number} is invalid due to "
            f"a self intersection at {crossing.x:.6f}, {crossing.y:.6f}",
            line_number=line_number,
        )
    if not is_valid or not is_simple:
        raise GeometryInvalidError(
            f"Geometry of airspace '{name}' starting on line {line_number} is invalid",
            line_number=line_number,
        )


def finalize(
    airspace: Airspace,
    validate_geometry: bool = True,
    fix_geometry: bool = False,
    include_openair: bool = False,
) -> Feature:
    """Close the airspace boundary into a polygon and wrap it as a feature."""
    line_number = airspace.first_line_number
    count = len(airspace.coordinates)
    if count <= 2:
        raise InsufficientGeometryError(
            f"Airspace definition on line {line_number} has insufficient number of "
            f"coordinates: {count}",
            line_number=line_number,
        )

    properties: Dict[str, Any] = {
        "name": airspace.name,
        "class": airspace.airspace_class,
        "upperCeiling": airspace.upper_ceiling.to_dict() if airspace.upper_ceiling else None,
        "lowerCeiling": airspace.lower_ceiling.to_dict() if airspace.lower_ceiling else None,
    }
    if include_openair:
        properties["openair"] = "\n".join(t.raw_line for t in airspace.consumed_tokens)

    if fix_geometry:
        result = repair_polygon(airspace.coordinates, line_number=line_number)
        logger.debug(f"Airspace '{airspace.name}' repaired using {result.method}")
        polygon = result.polygon
    else:
        try:
            polygon = geo.line_to_polygon(airspace.coordinates)
        except geo.GEOMETRY_ERRORS as e:
            raise ParserError(str(e), line_number=line_number, original=e) from e

    if validate_geometry:
        validate_polygon(polygon, airspace.name, line_number)

    return Feature(geometry=polygon, properties=properties)
