"""
Pointer to pin coordinate conversion.

Canvas targets (websites, mockups) store positions as percentages of the
unscaled content box, so a pin stays put when the reviewer zooms or
resizes the window. The video overlay is not zoomed; it stores the raw
pixel offset inside the rendered video element.
"""

from dataclasses import dataclass
from typing import Optional

from .models import (
    DEVICE_DIMENSIONS,
    AbsolutePosition,
    DeviceView,
    Position,
    RelativePosition,
)

ZOOM_MIN = 0.1
ZOOM_MAX = 5.0
ZOOM_STEP = 0.1
FIT_PADDING = 32


@dataclass(frozen=True)
class Rect:
    """An axis-aligned box in screen pixels.

    For canvas content, ``width`` and ``height`` are the unscaled layout
    size; the on-screen size is ``width * zoom``.
    """
    left: float
    top: float
    width: float
    height: float

    def to_dict(self) -> dict:
        return {"left": self.left, "top": self.top, "width": self.width, "height": self.height}


def clamp(value: float, low: float, high: float) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def _check_box(rect: Rect, zoom: float = 1.0) -> None:
    if rect.width <= 0 or rect.height <= 0:
        raise ValueError(f"Container has no area: {rect}")
    if zoom <= 0:
        raise ValueError(f"Zoom must be positive, got {zoom}")


def to_scope_relative(
    pointer_x: float,
    pointer_y: float,
    container: Rect,
    zoom: float = 1.0,
) -> RelativePosition:
    """
    Convert a pointer position to a zoom-independent canvas position.

    Out-of-bounds pointers are clamped onto the container edge, so a
    release outside the canvas still yields a valid pin.

    Args:
        pointer_x: Pointer x in screen pixels
        pointer_y: Pointer y in screen pixels
        container: Unscaled content box, positioned on screen
        zoom: Current zoom factor

    Returns:
        Position with both percentages in [0, 100]
    """
    _check_box(container, zoom)
    x = (pointer_x - container.left) / (container.width * zoom) * 100.0
    y = (pointer_y - container.top) / (container.height * zoom) * 100.0
    return RelativePosition(clamp(x, 0.0, 100.0), clamp(y, 0.0, 100.0))


def from_scope_relative(
    position: RelativePosition,
    container: Rect,
    zoom: float = 1.0,
) -> tuple[float, float]:
    """Render a canvas position back to screen pixels."""
    _check_box(container, zoom)
    x = container.left + position.x_percent / 100.0 * container.width * zoom
    y = container.top + position.y_percent / 100.0 * container.height * zoom
    return x, y


def to_overlay_pixels(pointer_x: float, pointer_y: float, overlay: Rect) -> AbsolutePosition:
    """Convert a pointer position to a pixel offset inside the video overlay."""
    _check_box(overlay)
    x = clamp(pointer_x - overlay.left, 0.0, overlay.width)
    y = clamp(pointer_y - overlay.top, 0.0, overlay.height)
    return AbsolutePosition(x, y)


def from_overlay_pixels(position: AbsolutePosition, overlay: Rect) -> tuple[float, float]:
    """Render a video overlay position back to screen pixels.

    Overlay positions are not zoom-adjusted.
    """
    return overlay.left + position.x, overlay.top + position.y


def render_position(
    position: Position,
    container: Rect,
    zoom: float = 1.0,
    overlay: Optional[Rect] = None,
) -> tuple[float, float]:
    """
    Resolve any stored position to screen pixels.

    Args:
        position: Stored canvas or overlay position
        container: Canvas content box (used for relative positions)
        zoom: Current canvas zoom
        overlay: Video overlay box; defaults to ``container``

    Returns:
        (x, y) in screen pixels
    """
    if isinstance(position, RelativePosition):
        return from_scope_relative(position, container, zoom)
    if isinstance(position, AbsolutePosition):
        return from_overlay_pixels(position, overlay or container)
    raise TypeError(f"Unsupported position type: {type(position).__name__}")


# =============================================================================
# Zoom
# =============================================================================

def clamp_zoom(zoom: float) -> float:
    """Clamp a manual zoom into the supported range."""
    return round(clamp(zoom, ZOOM_MIN, ZOOM_MAX), 4)


def zoom_in(zoom: float) -> float:
    return clamp_zoom(zoom + ZOOM_STEP)


def zoom_out(zoom: float) -> float:
    return clamp_zoom(zoom - ZOOM_STEP)


def fit_zoom(
    available_width: float,
    available_height: float,
    content_width: float,
    content_height: float,
    padding: float = FIT_PADDING,
    reserved_width: float = 0,
    allow_upscale: bool = False,
) -> float:
    """
    Compute the zoom that fits content inside the viewer.

    Args:
        available_width: Viewer width in pixels
        available_height: Viewer height in pixels
        content_width: Natural content width (image, video or device)
        content_height: Natural content height
        padding: Space kept free around the content
        reserved_width: Extra width taken by side controls
        allow_upscale: Allow zoom above 1 for small content

    Returns:
        Zoom factor; 1 when the content size is unknown
    """
    if content_width <= 0 or content_height <= 0:
        return 1.0
    width = max(available_width - padding - reserved_width, 1.0)
    height = max(available_height - padding, 1.0)
    scale = min(width / content_width, height / content_height)
    if not allow_upscale:
        scale = min(scale, 1.0)
    return scale


def device_fit_zoom(device: DeviceView, available_width: float, available_height: float) -> float:
    """Fit zoom for a website breakpoint. Desktop always renders at 1."""
    dimensions = DEVICE_DIMENSIONS.get(device)
    if dimensions is None:
        return 1.0
    width, height = dimensions
    return fit_zoom(available_width, available_height, width, height, allow_upscale=True)
