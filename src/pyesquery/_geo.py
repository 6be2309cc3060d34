"""Geospatial value normalization: GeoJSON out of every Elasticsearch encoding.

``geo_point`` values arrive as ``{"lat": .., "lon": ..}`` objects,
``[lon, lat]`` pairs, ``"lat,lon"`` strings or WKT ``POINT`` text;
``geo_shape`` values as GeoJSON objects or WKT text. Everything is
normalized to a GeoJSON mapping.
"""

from __future__ import annotations

import json
import re
from typing import Any

_TOKEN_RE = re.compile(
    r"\s*(?:(?P<word>[A-Za-z]+)|(?P<num>[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)|(?P<sym>[(),]))"
)

_GEOJSON_TYPES = {
    "point": "Point",
    "linestring": "LineString",
    "polygon": "Polygon",
    "multipoint": "MultiPoint",
    "multilinestring": "MultiLineString",
    "multipolygon": "MultiPolygon",
    "geometrycollection": "GeometryCollection",
    "envelope": "envelope",
}


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None or m.end() == pos or m.lastgroup is None:
            raise ValueError(f"unexpected character at offset {pos} in WKT")
        kind = m.lastgroup
        tokens.append((kind, m.group(kind)))
        pos = m.end()
    return tokens


class _WktParser:
    def __init__(self, text: str) -> None:
        self._tokens = _tokenize(text)
        self._pos = 0

    def parse(self) -> dict[str, Any]:
        geometry = self._geometry()
        if self._pos != len(self._tokens):
            raise ValueError("trailing content after WKT geometry")
        return geometry

    def _peek(self) -> tuple[str, str] | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _next(self) -> tuple[str, str]:
        tok = self._peek()
        if tok is None:
            raise ValueError("unexpected end of WKT")
        self._pos += 1
        return tok

    def _expect(self, sym: str) -> None:
        kind, value = self._next()
        if kind != "sym" or value != sym:
            raise ValueError(f"expected {sym!r} in WKT, got {value!r}")

    def _accept(self, sym: str) -> bool:
        tok = self._peek()
        if tok is not None and tok[0] == "sym" and tok[1] == sym:
            self._pos += 1
            return True
        return False

    def _geometry(self) -> dict[str, Any]:
        kind, word = self._next()
        if kind != "word":
            raise ValueError(f"expected geometry keyword, got {word!r}")
        name = word.upper()
        tok = self._peek()
        if tok is not None and tok[0] == "word" and tok[1].upper() in ("Z", "M", "ZM"):
            self._pos += 1
        tok = self._peek()
        if tok is not None and tok[0] == "word" and tok[1].upper() == "EMPTY":
            self._pos += 1
            return self._empty(name)

        if name == "POINT":
            self._expect("(")
            coords: Any = self._coord()
            self._expect(")")
            return {"type": "Point", "coordinates": coords}
        if name == "LINESTRING":
            return {"type": "LineString", "coordinates": self._coord_seq()}
        if name == "POLYGON":
            return {"type": "Polygon", "coordinates": self._list_of(self._coord_seq)}
        if name == "MULTIPOINT":
            return {"type": "MultiPoint", "coordinates": self._list_of(self._multipoint_member)}
        if name == "MULTILINESTRING":
            return {"type": "MultiLineString", "coordinates": self._list_of(self._coord_seq)}
        if name == "MULTIPOLYGON":
            polygon = lambda: self._list_of(self._coord_seq)  # noqa: E731
            return {"type": "MultiPolygon", "coordinates": self._list_of(polygon)}
        if name == "GEOMETRYCOLLECTION":
            return {"type": "GeometryCollection", "geometries": self._list_of(self._geometry)}
        if name in ("BBOX", "ENVELOPE"):
            self._expect("(")
            min_x = self._number()
            self._expect(",")
            max_x = self._number()
            self._expect(",")
            max_y = self._number()
            self._expect(",")
            min_y = self._number()
            self._expect(")")
            return {"type": "envelope", "coordinates": [[min_x, max_y], [max_x, min_y]]}
        raise ValueError(f"unsupported WKT geometry type {word!r}")

    @staticmethod
    def _empty(name: str) -> dict[str, Any]:
        if name == "GEOMETRYCOLLECTION":
            return {"type": "GeometryCollection", "geometries": []}
        geo_type = _GEOJSON_TYPES.get(name.lower())
        if geo_type is None or geo_type == "envelope":
            raise ValueError(f"unsupported WKT geometry type {name!r}")
        return {"type": geo_type, "coordinates": []}

    def _number(self) -> float:
        kind, value = self._next()
        if kind != "num":
            raise ValueError(f"expected number in WKT, got {value!r}")
        return float(value)

    def _coord(self) -> list[float]:
        coord = [self._number(), self._number()]
        tok = self._peek()
        while tok is not None and tok[0] == "num":
            coord.append(self._number())
            tok = self._peek()
        return coord

    def _coord_seq(self) -> list[list[float]]:
        self._expect("(")
        coords = [self._coord()]
        while self._accept(","):
            coords.append(self._coord())
        self._expect(")")
        return coords

    def _multipoint_member(self) -> list[float]:
        if self._accept("("):
            coord = self._coord()
            self._expect(")")
            return coord
        return self._coord()

    def _list_of(self, item: Any) -> list[Any]:
        self._expect("(")
        items = [item()]
        while self._accept(","):
            items.append(item())
        self._expect(")")
        return items


def parse_wkt(text: str) -> dict[str, Any]:
    """Parse well-known text into a GeoJSON mapping.

    Raises:
        ValueError: If the text is not valid WKT.
    """
    return _WktParser(text).parse()


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _point(lon: float, lat: float) -> dict[str, Any]:
    return {"type": "Point", "coordinates": [lon, lat]}


def decode_geo_point(value: Any) -> dict[str, Any] | None:
    """Normalize any ``geo_point`` encoding to a GeoJSON Point."""
    if isinstance(value, dict):
        if "type" in value and "coordinates" in value:
            return decode_geo_shape(value)
        lat = _as_float(value.get("lat"))
        lon = _as_float(value.get("lon"))
        if lat is None or lon is None:
            return None
        return _point(lon, lat)
    if isinstance(value, list):
        if len(value) < 2:
            return None
        lon, lat = _as_float(value[0]), _as_float(value[1])
        if lat is None or lon is None:
            return None
        return _point(lon, lat)
    if isinstance(value, str):
        text = value.strip()
        if text[:5].upper() == "POINT":
            try:
                return parse_wkt(text)
            except ValueError:
                return None
        parts = text.split(",")
        if len(parts) == 2:
            lat, lon = _as_float(parts[0].strip()), _as_float(parts[1].strip())
            if lat is not None and lon is not None:
                return _point(lon, lat)
    return None


def decode_geo_shape(value: Any) -> dict[str, Any] | None:
    """Normalize a ``geo_shape`` value (GeoJSON object or WKT) to GeoJSON."""
    if isinstance(value, dict):
        geo_type = value.get("type")
        if not isinstance(geo_type, str):
            return None
        normalized = dict(value)
        normalized["type"] = _GEOJSON_TYPES.get(geo_type.lower(), geo_type)
        if "geometries" in value and isinstance(value["geometries"], list):
            normalized["geometries"] = [
                g for g in (decode_geo_shape(v) for v in value["geometries"]) if g is not None
            ]
        return normalized
    if isinstance(value, str):
        try:
            return parse_wkt(value)
        except ValueError:
            return None
    return None


def parse_geometry(value: Any) -> dict[str, Any] | None:
    """Accept a GeoJSON mapping, GeoJSON text or WKT text as a constant geometry."""
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("{"):
            try:
                value = json.loads(text)
            except ValueError:
                return None
        else:
            return decode_geo_shape(text)
    return decode_geo_shape(value)


def bounding_box(geometry: dict[str, Any]) -> tuple[float, float, float, float] | None:
    """Return ``(min_lon, min_lat, max_lon, max_lat)`` for an axis-aligned rectangle.

    Recognizes ``envelope`` geometries and single-ring polygons whose
    closed ring has exactly two distinct longitudes and two distinct
    latitudes.
    """
    geo_type = geometry.get("type")
    coords = geometry.get("coordinates")
    try:
        if geo_type == "envelope":
            (x1, y1), (x2, y2) = ((c[0], c[1]) for c in coords)  # type: ignore[union-attr]
            return min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2)
        if geo_type == "Polygon" and isinstance(coords, list) and len(coords) == 1:
            ring = coords[0]
            if len(ring) != 5 or ring[0] != ring[-1]:
                return None
            xs = {float(c[0]) for c in ring}
            ys = {float(c[1]) for c in ring}
            if len(xs) != 2 or len(ys) != 2:
                return None
            corners = {(float(c[0]), float(c[1])) for c in ring[:4]}
            if len(corners) != 4:
                return None
            for a, b in zip(ring, ring[1:]):
                if a[0] != b[0] and a[1] != b[1]:
                    return None
            return min(xs), min(ys), max(xs), max(ys)
    except (TypeError, ValueError, IndexError):
        return None
    return None


def to_geojson_text(geometry: dict[str, Any] | None) -> str | None:
    if geometry is None:
        return None
    return json.dumps(geometry, separators=(",", ":"))
