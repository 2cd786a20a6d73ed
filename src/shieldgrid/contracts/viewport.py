"""Viewport contract.

Enforces the camera guarantees after every mutation: the scale stays
inside its configured bounds and the offsets remain finite numbers.
"""

import math
from typing import TYPE_CHECKING

from shieldgrid.contracts.base import require

if TYPE_CHECKING:
    from shieldgrid.viewport.camera import Camera


def assert_camera_valid(camera: "Camera") -> None:
    """Enforce camera invariants.

    Parameters
    ----------
    camera : Camera
        Camera after a zoom, pan or center operation.

    Raises
    ------
    ContractViolation
        If the scale left ``[min_scale, max_scale]`` or an offset is not finite.
    """
    require(
        camera.min_scale <= camera.scale <= camera.max_scale,
        f"Viewport contract violated: scale {camera.scale} outside "
        f"[{camera.min_scale}, {camera.max_scale}]"
    )
    require(
        math.isfinite(camera.offset_x) and math.isfinite(camera.offset_y),
        f"Viewport contract violated: non-finite offset ({camera.offset_x}, {camera.offset_y})"
    )
