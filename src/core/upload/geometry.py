"""Map frame dimensions to a storage partition."""

from .models import Geometry, GeometryCategory


def classify(width: int, height: int) -> GeometryCategory:
    """
    Classify frame dimensions.

    Taller than wide is portrait, wider than tall is landscape,
    and square frames fall into "other".
    """
    if height > width:
        return GeometryCategory.PORTRAIT
    if width > height:
        return GeometryCategory.LANDSCAPE
    return GeometryCategory.OTHER


def classify_geometry(geometry: Geometry) -> GeometryCategory:
    return classify(geometry.width, geometry.height)
