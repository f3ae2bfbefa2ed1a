"""
Tensor codec: letterbox a frame into the fixed network input and map model
coordinates back to the source frame.

Forward and inverse mapping both derive scale and padding from
`letterbox_geometry`, so a box survives encode -> decode unchanged up to
rounding.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from models.frame import FrameData

DEFAULT_PAD_VALUE = 114

# (source order, network order) -> cv2 conversion code
_CONVERSIONS = {
    ("BGR", "RGB"): cv2.COLOR_BGR2RGB,
    ("RGB", "BGR"): cv2.COLOR_RGB2BGR,
    ("BGRA", "RGB"): cv2.COLOR_BGRA2RGB,
    ("BGRA", "BGR"): cv2.COLOR_BGRA2BGR,
    ("RGBA", "RGB"): cv2.COLOR_RGBA2RGB,
    ("RGBA", "BGR"): cv2.COLOR_RGBA2BGR,
    ("GRAY", "RGB"): cv2.COLOR_GRAY2RGB,
    ("GRAY", "BGR"): cv2.COLOR_GRAY2BGR,
}


@dataclass(frozen=True)
class LetterboxGeometry:
    """
    Scale and padding that place a source frame inside the network input.

    Attributes:
        scale: Uniform resize factor applied to the source frame.
        new_width: Width of the resized frame before padding.
        new_height: Height of the resized frame before padding.
        left, top, right, bottom: Padding in pixels on each side.
    """
    scale: float
    new_width: int
    new_height: int
    left: int
    top: int
    right: int
    bottom: int

    @property
    def dw(self) -> int:
        return self.left + self.right

    @property
    def dh(self) -> int:
        return self.top + self.bottom


def letterbox_geometry(src_width: int, src_height: int, dst_width: int, dst_height: int) -> LetterboxGeometry:
    """
    Compute the letterbox placement of a src frame in a dst canvas.

    Padding is split with integer division, so the bottom/right side gets the
    extra pixel when the remainder is odd.
    """
    if src_width <= 0 or src_height <= 0:
        raise ValueError(f"Invalid source size {src_width}x{src_height}")
    if dst_width <= 0 or dst_height <= 0:
        raise ValueError(f"Invalid target size {dst_width}x{dst_height}")

    sx = dst_width / src_width
    sy = dst_height / src_height
    # The limiting axis fills the target exactly; truncate only the other one.
    if sx <= sy:
        scale = sx
        new_w = dst_width
        new_h = min(dst_height, max(1, int(src_height * scale)))
    else:
        scale = sy
        new_h = dst_height
        new_w = min(dst_width, max(1, int(src_width * scale)))

    dw = dst_width - new_w
    dh = dst_height - new_h
    top = dh // 2
    left = dw // 2
    return LetterboxGeometry(
        scale=scale,
        new_width=new_w,
        new_height=new_h,
        left=left,
        top=top,
        right=dw - left,
        bottom=dh - top,
    )


def convert_channels(pixels: np.ndarray, source_order: str, target_order: str) -> np.ndarray:
    """Convert an image between channel orders; returns the input when they match."""
    if source_order == target_order:
        return pixels
    code = _CONVERSIONS.get((source_order, target_order))
    if code is None:
        raise ValueError(f"Unsupported channel conversion {source_order} -> {target_order}")
    return cv2.cvtColor(pixels, code)


def _as_box_array(boxes: Union[np.ndarray, Sequence[float], Sequence[Sequence[float]]]) -> np.ndarray:
    arr = np.array(boxes, dtype=np.float32)
    if arr.ndim == 1:
        arr = arr.reshape(1, 4)
    if arr.ndim != 2 or arr.shape[1] != 4:
        raise ValueError(f"Expected boxes of shape (N, 4), got {arr.shape}")
    return arr


def encode_coords(
    boxes: Union[np.ndarray, Sequence[float]],
    model_size: Tuple[int, int],
    original_size: Tuple[int, int],
    normalized: bool = False,
) -> np.ndarray:
    """
    Forward-map (x1, y1, x2, y2) boxes from source pixels into model space.

    Args:
        boxes: (N, 4) or single (4,) box in source-frame pixels.
        model_size: Network input (width, height).
        original_size: Source frame (width, height).
        normalized: Return coordinates divided by the model size.
    """
    g = letterbox_geometry(original_size[0], original_size[1], model_size[0], model_size[1])
    out = _as_box_array(boxes)
    out *= g.scale
    out[:, [0, 2]] += g.left
    out[:, [1, 3]] += g.top
    if normalized:
        out[:, [0, 2]] /= model_size[0]
        out[:, [1, 3]] /= model_size[1]
    return out


def decode_coords(
    boxes: Union[np.ndarray, Sequence[float]],
    model_size: Tuple[int, int],
    original_size: Tuple[int, int],
    normalized: bool = False,
) -> np.ndarray:
    """
    Inverse-map (x1, y1, x2, y2) boxes from model space to source pixels.

    Args:
        boxes: (N, 4) or single (4,) box in model space.
        model_size: Network input (width, height).
        original_size: Source frame (width, height).
        normalized: Boxes are in [0, 1] relative to the model size.

    Returns:
        (N, 4) float32 array clipped to the source frame.
    """
    model_w, model_h = model_size
    orig_w, orig_h = original_size
    g = letterbox_geometry(orig_w, orig_h, model_w, model_h)

    out = _as_box_array(boxes)
    if normalized:
        out[:, [0, 2]] *= model_w
        out[:, [1, 3]] *= model_h
    out[:, [0, 2]] -= g.left
    out[:, [1, 3]] -= g.top
    out /= g.scale
    out[:, [0, 2]] = np.clip(out[:, [0, 2]], 0, orig_w)
    out[:, [1, 3]] = np.clip(out[:, [1, 3]], 0, orig_h)
    return out


class TensorCodec:
    """
    Letterboxes frames into a pre-allocated network input tensor.

    The tensor is allocated once and fully overwritten by every encode().
    Quantized (uint8) inputs receive the raw pixel bytes; float inputs are
    scaled to [0, 1]. Which path runs is fixed at construction.

    Example:
        codec = TensorCodec(320, 320, np.float32)
        tensor = codec.encode(frame_data)
        boxes = codec.decode(model_boxes, frame_data.size)
    """

    def __init__(
        self,
        input_width: int,
        input_height: int,
        input_dtype=np.float32,
        channels_last: bool = True,
        channel_order: str = "RGB",
        pad_value: int = DEFAULT_PAD_VALUE,
        normalized_boxes: bool = False,
    ):
        if input_width <= 0 or input_height <= 0:
            raise ValueError(f"Invalid input size {input_width}x{input_height}")
        if channel_order not in ("RGB", "BGR"):
            raise ValueError(f"Unsupported network channel order: {channel_order}")

        self.input_width = int(input_width)
        self.input_height = int(input_height)
        self.dtype = np.dtype(input_dtype)
        self.channels_last = channels_last
        self.channel_order = channel_order
        self.pad_value = int(pad_value)
        self.normalized_boxes = normalized_boxes
        self.is_quantized = self.dtype == np.uint8

        if channels_last:
            shape = (1, self.input_height, self.input_width, 3)
        else:
            shape = (1, 3, self.input_height, self.input_width)
        self._tensor: Optional[np.ndarray] = np.zeros(shape, dtype=self.dtype)
        self._canvas: Optional[np.ndarray] = np.full(
            (self.input_height, self.input_width, 3), self.pad_value, dtype=np.uint8
        )
        self.last_geometry: Optional[LetterboxGeometry] = None

    @property
    def model_size(self) -> Tuple[int, int]:
        return (self.input_width, self.input_height)

    @property
    def tensor_shape(self) -> Tuple[int, ...]:
        if self.channels_last:
            return (1, self.input_height, self.input_width, 3)
        return (1, 3, self.input_height, self.input_width)

    @property
    def tensor(self) -> np.ndarray:
        if self._tensor is None:
            raise RuntimeError("TensorCodec has been released")
        return self._tensor

    def encode(self, frame: Union[FrameData, np.ndarray]) -> np.ndarray:
        """
        Letterbox `frame` into the input tensor and return the tensor.

        The returned array is the codec's own buffer; it is overwritten by
        the next call.
        """
        if self._tensor is None or self._canvas is None:
            raise RuntimeError("TensorCodec has been released")

        if isinstance(frame, FrameData):
            pixels, source_order = frame.frame, frame.channel_order
        else:
            pixels = frame
            source_order = "GRAY" if frame.ndim == 2 else ("BGRA" if frame.shape[2] == 4 else "BGR")

        if pixels is None or pixels.size == 0:
            raise ValueError("Empty frame")
        if pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 frame, got {pixels.dtype}")

        src_h, src_w = pixels.shape[:2]
        g = letterbox_geometry(src_w, src_h, self.input_width, self.input_height)

        if (g.new_width, g.new_height) != (src_w, src_h):
            interpolation = cv2.INTER_AREA if g.scale <= 1 else cv2.INTER_LINEAR
            resized = cv2.resize(pixels, (g.new_width, g.new_height), interpolation=interpolation)
        else:
            resized = pixels
        resized = convert_channels(resized, source_order, self.channel_order)

        canvas = self._canvas
        canvas.fill(self.pad_value)
        canvas[g.top:g.top + g.new_height, g.left:g.left + g.new_width] = resized

        target = self._tensor[0]
        source = canvas if self.channels_last else canvas.transpose(2, 0, 1)
        if self.is_quantized:
            np.copyto(target, source)
        else:
            np.multiply(source, 1.0 / 255.0, out=target, casting="unsafe")

        self.last_geometry = g
        return self._tensor

    def decode(self, boxes: np.ndarray, original_size: Tuple[int, int]) -> np.ndarray:
        """Inverse-map model-space boxes using this codec's model size and box format."""
        return decode_coords(boxes, self.model_size, original_size, normalized=self.normalized_boxes)

    def release(self) -> None:
        """Drop the pre-allocated buffers."""
        self._tensor = None
        self._canvas = None
        self.last_geometry = None
