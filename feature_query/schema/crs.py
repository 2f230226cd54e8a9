"""Coordinate reference system lookup by SRID."""

from functools import lru_cache

from pyproj import CRS
from pyproj.exceptions import CRSError

from feature_query.core.errors import CRSResolutionError


@lru_cache(maxsize=64)
def resolve_crs(srid: int) -> CRS:
    """
    Resolve an EPSG code to a CRS.

    Raises:
        CRSResolutionError: If the code is unknown
    """
    try:
        return CRS.from_epsg(srid)
    except CRSError as e:
        raise CRSResolutionError(f"Unable to resolve EPSG:{srid}") from e
