"""
Object detection: letterbox codec, output decoding, suppression and the
detector facade that ties them to an inference engine.
"""

from .codec import LetterboxGeometry, TensorCodec, decode_coords, encode_coords, letterbox_geometry
from .decoder import CandidateBox, CandidateBoxes, decode, filter_small_boxes
from .detector import YoloDetector
from .nms import box_iou, suppress

__all__ = [
    "LetterboxGeometry",
    "TensorCodec",
    "decode_coords",
    "encode_coords",
    "letterbox_geometry",
    "CandidateBox",
    "CandidateBoxes",
    "decode",
    "filter_small_boxes",
    "YoloDetector",
    "box_iou",
    "suppress",
]
