"""Color normalization shared by configuration, ledger and renderer.

Colors are stored as upper-case ``#RRGGBB`` strings. Parsing is delegated to
matplotlib so any color spec it understands (hex, named, RGB tuples in the
0-1 range) is accepted at the boundary.
"""

from typing import Tuple, Union

from matplotlib import colors as mcolors

ColorLike = Union[str, Tuple[float, float, float]]


def normalize_color(value: ColorLike) -> str:
    """Return ``value`` as an upper-case ``#RRGGBB`` string.

    Raises
    ------
    ValueError
        If matplotlib cannot interpret the color.
    """
    if isinstance(value, str):
        value = value.strip()
    try:
        return mcolors.to_hex(value, keep_alpha=False).upper()
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid color: {value!r}") from e


def to_rgb(value: ColorLike) -> Tuple[float, float, float]:
    """RGB triple in the 0-1 range, as the renderer raster expects."""
    return mcolors.to_rgb(normalize_color(value))
