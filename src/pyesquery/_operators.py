"""Operator tables shared by the CEL front-end and the query translator."""

from pyesquery.predicate import CompareOp, GeoRelationKind

# Lark relation rule name -> comparison operator
CEL_COMPARISON_OPERATORS: dict[str, CompareOp] = {
    "relation_eq": CompareOp.EQ,
    "relation_ne": CompareOp.NE,
    "relation_lt": CompareOp.LT,
    "relation_le": CompareOp.LE,
    "relation_gt": CompareOp.GT,
    "relation_ge": CompareOp.GE,
}

# Comparison operator -> range query bound
RANGE_BOUNDS: dict[CompareOp, str] = {
    CompareOp.GT: "gt",
    CompareOp.GE: "gte",
    CompareOp.LT: "lt",
    CompareOp.LE: "lte",
}

# CEL function name -> spatial relation (field, geometry) or (geometry, field)
CEL_GEO_FUNCTIONS: dict[str, GeoRelationKind] = {
    "geo_within": GeoRelationKind.WITHIN,
    "geo_contains": GeoRelationKind.CONTAINS,
    "geo_intersects": GeoRelationKind.INTERSECTS,
    "geo_disjoint": GeoRelationKind.DISJOINT,
}

# Relation seen from the geometry side when the constant is the first operand
SWAPPED_GEO_RELATIONS: dict[GeoRelationKind, GeoRelationKind] = {
    GeoRelationKind.WITHIN: GeoRelationKind.CONTAINS,
    GeoRelationKind.CONTAINS: GeoRelationKind.WITHIN,
    GeoRelationKind.INTERSECTS: GeoRelationKind.INTERSECTS,
    GeoRelationKind.DISJOINT: GeoRelationKind.DISJOINT,
}

# CEL pattern method -> LIKE rewrite
CEL_PATTERN_METHODS = frozenset({"startsWith", "endsWith", "contains"})
CEL_LIKE_FUNCTIONS: dict[str, bool] = {"like": False, "ilike": True}
