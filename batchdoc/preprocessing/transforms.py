"""Image transforms applied to photographed documents before OCR.

Each step is a pure function of its input array, so the full preprocessing
chain is deterministic for a given image.
"""

import cv2
import numpy as np

from batchdoc.utils.logger import get_logger

logger = get_logger(__name__)

_SHARPEN_KERNEL = np.array(
    [[0, -1, 0], [-1, 5, -1], [0, -1, 0]],
    dtype=np.float32,
)


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert an image to single-channel grayscale.

    Args:
        image: Input image (BGR, BGRA or grayscale).

    Returns:
        Grayscale image.
    """
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def normalize_histogram(image: np.ndarray) -> np.ndarray:
    """Stretch pixel intensities to span the full 0-255 range.

    Args:
        image: Grayscale input image.

    Returns:
        Contrast-stretched image of the same shape.
    """
    result = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX)
    logger.debug("Applied min/max histogram normalization")
    return result


def sharpen(image: np.ndarray) -> np.ndarray:
    """Sharpen character edges with a 3x3 Laplacian-style kernel.

    Args:
        image: Grayscale input image.

    Returns:
        Sharpened image of the same shape and dtype.
    """
    result = cv2.filter2D(image, -1, _SHARPEN_KERNEL)
    logger.debug("Applied sharpen kernel")
    return result


def binarize_fixed(image: np.ndarray, threshold: int = 128) -> np.ndarray:
    """Binarize an image at a fixed intensity threshold.

    Args:
        image: Grayscale input image.
        threshold: Pixels above this value become white, the rest black.

    Returns:
        Binary image with pixel values 0 or 255.
    """
    _, binary = cv2.threshold(image, threshold, 255, cv2.THRESH_BINARY)
    logger.debug("Applied fixed binarization at %d", threshold)
    return binary
