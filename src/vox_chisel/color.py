"""
Color Matching Module

Handles:
- sRGB to Linear color space conversion
- Linear sRGB to CIE Lab (D65 white point)
- CIEDE2000 color difference
- Nearest-material lookup against a MaterialPalette

Color Space Background:
- .vox palettes and block colors are stored as 8-bit sRGB
- Euclidean distance in sRGB overweights differences in bright colors
- CIEDE2000 in Lab tracks perceived difference much more closely, which is
  what decides whether a voxel becomes "red wool" or "red terracotta"
"""

from typing import Mapping, Sequence, Tuple, List
import math
import numpy as np
from numba import njit

from .errors import EmptyPalette


RGB = Tuple[int, int, int]

METRICS = ("ciede2000", "euclidean")

# sRGB (linear) to XYZ, D65
_RGB_TO_XYZ = np.array([
    [0.4124564, 0.3575761, 0.1804375],
    [0.2126729, 0.7151522, 0.0721750],
    [0.0193339, 0.1191920, 0.9503041],
], dtype=np.float64)

_D65_WHITE = np.array([0.95047, 1.0, 1.08883], dtype=np.float64)


@njit(cache=True)
def _srgb_to_linear_component(c: float) -> float:
    """
    Convert a single sRGB component to Linear.

    The sRGB standard uses a piecewise function:
    - Linear below threshold (0.04045)
    - Gamma curve above threshold
    """
    if c <= 0.04045:
        return c / 12.92
    else:
        return ((c + 0.055) / 1.055) ** 2.4


# Not parallel=True: matchers are queried from encoder threads, and the
# workqueue threading layer aborts on concurrent parallel kernels.
@njit(cache=True)
def srgb_to_linear(colors: np.ndarray) -> np.ndarray:
    """
    Convert sRGB colors to Linear color space.

    Args:
        colors: Array of shape (N, 3) or (N, 4) with uint8 sRGB values

    Returns:
        Array of shape (N, 3) with float64 Linear values [0, 1]
    """
    n = colors.shape[0]
    result = np.empty((n, 3), dtype=np.float64)

    for i in range(n):
        for c in range(3):  # Alpha is ignored
            result[i, c] = _srgb_to_linear_component(colors[i, c] / 255.0)

    return result


def srgb_to_lab(colors: np.ndarray) -> np.ndarray:
    """
    Convert sRGB colors to CIE Lab.

    Args:
        colors: Array of shape (N, 3) or (N, 4) with uint8 sRGB values

    Returns:
        Array of shape (N, 3) with L, a, b
    """
    colors = np.ascontiguousarray(colors, dtype=np.uint8)
    xyz = srgb_to_linear(colors) @ _RGB_TO_XYZ.T / _D65_WHITE

    epsilon = (6.0 / 29.0) ** 3
    f = np.where(
        xyz > epsilon,
        np.cbrt(xyz),
        xyz / (3.0 * (6.0 / 29.0) ** 2) + 4.0 / 29.0
    )

    lab = np.empty_like(f)
    lab[:, 0] = 116.0 * f[:, 1] - 16.0
    lab[:, 1] = 500.0 * (f[:, 0] - f[:, 1])
    lab[:, 2] = 200.0 * (f[:, 1] - f[:, 2])
    return lab


@njit(cache=True)
def _ciede2000(l1: float, a1: float, b1: float, l2: float, a2: float, b2: float) -> float:
    """CIEDE2000 difference between two Lab colors (kL = kC = kH = 1)."""
    pow25_7 = 25.0 ** 7

    c1 = math.sqrt(a1 * a1 + b1 * b1)
    c2 = math.sqrt(a2 * a2 + b2 * b2)
    c_bar7 = ((c1 + c2) / 2.0) ** 7
    g = 0.5 * (1.0 - math.sqrt(c_bar7 / (c_bar7 + pow25_7)))

    a1p = (1.0 + g) * a1
    a2p = (1.0 + g) * a2
    c1p = math.sqrt(a1p * a1p + b1 * b1)
    c2p = math.sqrt(a2p * a2p + b2 * b2)

    h1p = 0.0
    if a1p != 0.0 or b1 != 0.0:
        h1p = math.atan2(b1, a1p) * 180.0 / math.pi
        if h1p < 0.0:
            h1p += 360.0
    h2p = 0.0
    if a2p != 0.0 or b2 != 0.0:
        h2p = math.atan2(b2, a2p) * 180.0 / math.pi
        if h2p < 0.0:
            h2p += 360.0

    delta_l = l2 - l1
    delta_c = c2p - c1p

    chroma_product = c1p * c2p
    delta_h_deg = 0.0
    if chroma_product != 0.0:
        delta_h_deg = h2p - h1p
        if delta_h_deg > 180.0:
            delta_h_deg -= 360.0
        elif delta_h_deg < -180.0:
            delta_h_deg += 360.0
    delta_h = 2.0 * math.sqrt(chroma_product) * math.sin(math.radians(delta_h_deg / 2.0))

    l_bar = (l1 + l2) / 2.0
    c_bar_p = (c1p + c2p) / 2.0

    h_bar = h1p + h2p
    if chroma_product != 0.0:
        if abs(h1p - h2p) <= 180.0:
            h_bar = h_bar / 2.0
        elif h_bar < 360.0:
            h_bar = (h_bar + 360.0) / 2.0
        else:
            h_bar = (h_bar - 360.0) / 2.0

    t = (
        1.0
        - 0.17 * math.cos(math.radians(h_bar - 30.0))
        + 0.24 * math.cos(math.radians(2.0 * h_bar))
        + 0.32 * math.cos(math.radians(3.0 * h_bar + 6.0))
        - 0.20 * math.cos(math.radians(4.0 * h_bar - 63.0))
    )
    delta_theta = 30.0 * math.exp(-(((h_bar - 275.0) / 25.0) ** 2))
    c_bar_p7 = c_bar_p ** 7
    r_c = 2.0 * math.sqrt(c_bar_p7 / (c_bar_p7 + pow25_7))

    l_term = (l_bar - 50.0) ** 2
    s_l = 1.0 + 0.015 * l_term / math.sqrt(20.0 + l_term)
    s_c = 1.0 + 0.045 * c_bar_p
    s_h = 1.0 + 0.015 * c_bar_p * t
    r_t = -math.sin(math.radians(2.0 * delta_theta)) * r_c

    dl = delta_l / s_l
    dc = delta_c / s_c
    dh = delta_h / s_h
    return math.sqrt(dl * dl + dc * dc + dh * dh + r_t * dc * dh)


@njit(cache=True)
def ciede2000(lab: np.ndarray, references: np.ndarray) -> np.ndarray:
    """
    CIEDE2000 differences between one Lab color and many.

    Args:
        lab: Array of shape (3,)
        references: Array of shape (N, 3)

    Returns:
        Array of shape (N,) with the differences
    """
    n = references.shape[0]
    result = np.empty(n, dtype=np.float64)
    for i in range(n):
        result[i] = _ciede2000(
            lab[0], lab[1], lab[2],
            references[i, 0], references[i, 1], references[i, 2]
        )
    return result


class ColorMatcher:
    """
    Nearest-material lookup.

    The material palette is captured at construction and its reference
    coordinates are precomputed; the matcher never mutates afterwards, so a
    single instance can be shared by concurrent encoders.

    Usage:
        matcher = ColorMatcher({"minecraft:red_wool": (160, 39, 34)})
        matcher.match((200, 30, 30))  # "minecraft:red_wool"
    """

    def __init__(self, material_palette: Mapping[str, RGB], metric: str = "ciede2000"):
        """
        Initialize the matcher.

        Args:
            material_palette: Ordered mapping of material id to RGB color
            metric: "ciede2000" (perceptual) or "euclidean" (RGB space)

        Raises:
            EmptyPalette: if the palette has no entries
        """
        if metric not in METRICS:
            raise ValueError(f"Unknown color metric {metric!r}, expected one of {METRICS}")
        if not material_palette:
            raise EmptyPalette("Material palette has no entries")

        self.metric = metric
        self._materials: Tuple[str, ...] = tuple(material_palette)
        self._rgb = np.array(
            [tuple(material_palette[m])[:3] for m in self._materials], dtype=np.uint8
        )
        self._lab = srgb_to_lab(self._rgb)

    @property
    def materials(self) -> Tuple[str, ...]:
        return self._materials

    def distances(self, color: Sequence[int]) -> np.ndarray:
        """Distance from color to every palette entry, in declaration order."""
        rgb = np.array([tuple(color)[:3]], dtype=np.uint8)
        if self.metric == "euclidean":
            diff = self._rgb.astype(np.float64) - rgb.astype(np.float64)
            return np.sqrt(np.sum(diff ** 2, axis=1))
        return ciede2000(srgb_to_lab(rgb)[0], self._lab)

    def match(self, color: Sequence[int]) -> str:
        """
        Get the material closest to color.

        Ties resolve to the entry declared first (argmin returns the
        first minimum).
        """
        return self._materials[int(np.argmin(self.distances(color)))]

    def match_many(self, colors: Sequence[Sequence[int]]) -> List[str]:
        """Match several colors; the result is aligned with the input."""
        return [self.match(color) for color in colors]
