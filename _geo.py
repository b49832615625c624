"""Geometry primitives used to turn OpenAIR boundaries into polygons.

Geodesic work (destinations, bearings, distances, areas) is done on the WGS84
ellipsoid with ``pyproj.Geod``; planar topology (validity, noding, envelopes) with
shapely on lon/lat coordinates. Metric buffering happens in a local azimuthal
equidistant projection centred on the geometry.

Every helper is safe to call from several threads at once: each thread gets its own
``Geod`` and transformers are created per call.
"""

import math
import re
import threading
from typing import List, Optional, Sequence, Tuple

from pyproj import CRS, Geod, Transformer
from pyproj.exceptions import GeodError, ProjError
from shapely.geometry import LineString, MultiPoint, Point, Polygon
from shapely.ops import polygonize, transform, unary_union
from shapely.errors import ShapelyError
from shapely.validation import explain_validity

DEFAULT_STEPS = 50

# what the libraries raise for geometry they cannot handle
GEOMETRY_ERRORS = (ValueError, ShapelyError, ProjError, GeodError)

# meters per unit
UNITS = {
    "meters": 1.0,
    "kilometers": 1000.0,
    "nauticalmiles": 1852.0,
}

SELF_INTERSECTION_RE = re.compile(
    r"Self-intersection\[(-?[\d.eE+-]+) (-?[\d.eE+-]+)\]", re.I
)

LonLat = Sequence[float]

_local = threading.local()


def _geod() -> Geod:
    geod = getattr(_local, "geod", None)
    if geod is None:
        geod = _local.geod = Geod(ellps="WGS84")
    return geod


# ============== Projection helpers ==============


def local_equal_area_crs(lon: float, lat: float) -> CRS:
    """
    Build a local Azimuthal Equidistant CRS centered on the given lon/lat,
    suitable for buffering distances in meters.
    """
    return CRS.from_proj4(
        f"+proj=aeqd +lat_0={lat} +lon_0={lon} +x_0=0 +y_0=0 +datum=WGS84 +units=m +no_defs"
    )


def project_geom(geom, center: Tuple[float, float], inverse=False):
    """
    Project geometry to/from local AEQD centered at 'center' (lon,lat).
    """
    lon0, lat0 = center
    src = CRS.from_epsg(4326)
    dst = local_equal_area_crs(lon0, lat0)
    fwd = Transformer.from_crs(src, dst, always_xy=True).transform
    inv = Transformer.from_crs(dst, src, always_xy=True).transform
    return transform(inv if inverse else fwd, geom)


# ============== Measurements ==============


def destination(origin: LonLat, distance_m: float, bearing_deg: float) -> List[float]:
    lon, lat, _ = _geod().fwd(origin[0], origin[1], bearing_deg, distance_m)
    return [lon, lat]


def bearing(start: LonLat, end: LonLat) -> float:
    """Initial bearing from start to end in degrees, -180..180 clockwise from north."""
    fwd_az, _, _ = _geod().inv(start[0], start[1], end[0], end[1])
    return fwd_az


def distance(start: LonLat, end: LonLat, units: str = "kilometers") -> float:
    if units not in UNITS:
        raise ValueError(f"Unknown distance unit '{units}'")
    _, _, meters = _geod().inv(start[0], start[1], end[0], end[1])
    return meters / UNITS[units]


def area(part: Polygon) -> float:
    """Geodesic area in square meters."""
    value, _ = _geod().geometry_area_perimeter(part)
    return abs(value)


# ============== Rings ==============


def circle(center: LonLat, radius_m: float, steps: int = DEFAULT_STEPS) -> List[List[float]]:
    """
    Closed ring of ``steps`` points around center, walked counter-clockwise
    starting due north.
    """
    coords = [destination(center, radius_m, i * -360.0 / steps) for i in range(steps)]
    coords.append(list(coords[0]))
    return coords


def arc(
    center: LonLat,
    radius_km: float,
    start_bearing: float,
    end_bearing: float,
    steps: int = DEFAULT_STEPS,
) -> List[List[float]]:
    """
    Points along an arc walked clockwise from start_bearing to end_bearing.

    ``steps`` is the number of points a full circle would get; the arc always ends
    exactly on end_bearing. Equal bearings describe a full circle.
    """
    radius_m = radius_km * 1000.0
    start = start_bearing % 360
    end = end_bearing % 360
    if math.isclose(start, end, abs_tol=1e-9):
        return circle(center, radius_m, steps)

    arc_end = end if start < end else end + 360
    coords = []
    i = 0
    alpha = start
    while alpha < arc_end - 1e-9:
        coords.append(destination(center, radius_m, alpha))
        i += 1
        alpha = start + i * 360.0 / steps
    coords.append(destination(center, radius_m, arc_end))
    return coords


# ============== Polygons ==============


def line_to_polygon(points: Sequence[LonLat]) -> Polygon:
    """
    Build a polygon from an ordered line of points, closing it if needed.
    """
    line = LineString(points)
    coords = list(line.coords)
    if not coords:
        raise ValueError("Cannot build a polygon without points")
    if coords[0] != coords[-1]:
        coords.append(coords[0])
    return Polygon(coords)


def buffer_by_meters(geom, meters: float):
    """
    Buffer a lon/lat geometry by a metric distance using a local AEQD projection
    around its centroid.
    """
    centroid = geom.centroid
    center = (centroid.x, centroid.y)
    proj = project_geom(geom, center=center, inverse=False)
    buf = proj.buffer(meters, join_style="mitre")
    return project_geom(buf, center=center, inverse=True)


def envelope_of(points: Sequence[LonLat]) -> Polygon:
    """Bounding box polygon of all points."""
    env = MultiPoint([tuple(p) for p in points]).envelope
    if not isinstance(env, Polygon) or env.is_empty:
        raise ValueError(f"Envelope of {len(points)} point(s) does not enclose an area")
    return env


def unkink_into_parts(polygon: Polygon) -> List[Polygon]:
    """
    Split a polygon whose boundary crosses itself into simple polygons, one for
    every face enclosed by the noded boundary.
    """
    noded = unary_union(LineString(polygon.exterior.coords))
    parts = list(polygonize(noded))
    if not parts:
        raise ValueError("Boundary does not enclose any area")
    return parts


def is_valid_polygon(polygon: Polygon) -> bool:
    return polygon.is_valid


def is_simple_polygon(polygon: Polygon) -> bool:
    return polygon.exterior.is_simple


def self_intersection_point(polygon: Polygon) -> Optional[Point]:
    """Location where the boundary touches or crosses itself, None for simple rings."""
    if polygon.exterior.is_simple:
        return None
    m = SELF_INTERSECTION_RE.search(explain_validity(polygon))
    if m:
        return Point(float(m.group(1)), float(m.group(2)))

    # a vertex visited twice
    coords = list(polygon.exterior.coords)[:-1]
    seen = set()
    for c in coords:
        if c in seen:
            return Point(c)
        seen.add(c)
    # a node introduced where two edges cross
    noded = unary_union(LineString(polygon.exterior.coords))
    for segment in getattr(noded, "geoms", [noded]):
        for c in segment.coords:
            if c not in seen:
                return Point(c)
    return None
