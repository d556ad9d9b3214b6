# pdf_layout_diff/colorize.py
"""
GIMP style "colorize": map every pixel's luminance onto a single hue.

Used to paint whole pages that have no counterpart in the other document.
"""
from __future__ import annotations
import cv2
import numpy as np

MAX_COLOR = 256

LUMINANCE_RED = 0.2126
LUMINANCE_GREEN = 0.7152
LUMINANCE_BLUE = 0.0722


class Colorize:
    """
    Lookup-table colour remap for one hue/saturation/lightness setting.

    Args:
        hue: 0..360 degrees
        saturation: 0..100, HSV (HSB) saturation of the target colour
        lightness: -100..100, shifts the luminance before the hue is applied
    """

    def __init__(self, hue: float = 0.0, saturation: float = 20.0, lightness: float = 0.0):
        self.hue = float(hue)
        self.saturation = float(saturation)
        self.lightness = float(lightness)

        levels = np.arange(MAX_COLOR, dtype=np.float64)
        self.lum_red = (levels * LUMINANCE_RED).astype(np.int32)
        self.lum_green = (levels * LUMINANCE_GREEN).astype(np.int32)
        self.lum_blue = (levels * LUMINANCE_BLUE).astype(np.int32)

        # one HSV pixel per luminance level; float HSV in OpenCV is H 0..360, S and V 0..1
        ramp = np.empty((MAX_COLOR, 1, 3), dtype=np.float32)
        ramp[..., 0] = self.hue % 360.0
        ramp[..., 1] = min(max(self.saturation / 100.0, 0.0), 1.0)
        ramp[:, 0, 2] = levels / 255.0
        rgb = cv2.cvtColor(ramp, cv2.COLOR_HSV2RGB).reshape(MAX_COLOR, 3)
        self.final = np.clip(rgb * 255.0 + 0.5, 0, 255).astype(np.uint8)

    @classmethod
    def red(cls) -> "Colorize":
        return cls(hue=0.0, saturation=50.0)

    def luminance(self, rgb: np.ndarray) -> np.ndarray:
        lum = (
            self.lum_red[rgb[..., 0]]
            + self.lum_green[rgb[..., 1]]
            + self.lum_blue[rgb[..., 2]]
        )
        if self.lightness > 0:
            lum = (lum * (100.0 - self.lightness) / 100.0 + 255.0 * self.lightness / 100.0).astype(np.int32)
        elif self.lightness < 0:
            lum = (lum * (100.0 + self.lightness) / 100.0).astype(np.int32)
        return np.clip(lum, 0, MAX_COLOR - 1)

    def apply(self, image: np.ndarray) -> np.ndarray:
        """
        Colorize an RGB or RGBA uint8 image. Returns a new array of the same
        shape; an alpha channel is carried over untouched.
        """
        out = image.copy()
        out[..., :3] = self.final[self.luminance(image)]
        return out
