"""Image preprocessing pipeline for document OCR.

Runs the fixed grayscale, normalize, sharpen and threshold chain and
writes the result to a temporary derived file that exists only for the
duration of one OCR call.
"""

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from batchdoc.utils.config import PreprocessingConfig
from batchdoc.utils.logger import get_logger

from .transforms import binarize_fixed, normalize_histogram, sharpen, to_grayscale

logger = get_logger(__name__)


@dataclass
class QualityMetrics:
    """Before/after image quality measurements."""

    sharpness_before: float
    sharpness_after: float
    contrast_before: float
    contrast_after: float


def calculate_sharpness(image: np.ndarray) -> float:
    """Calculate image sharpness using Laplacian variance.

    Args:
        image: Input image (BGR or grayscale).

    Returns:
        Sharpness score (higher means sharper).
    """
    return float(cv2.Laplacian(to_grayscale(image), cv2.CV_64F).var())


def calculate_contrast(image: np.ndarray) -> float:
    """Calculate image contrast as the standard deviation of pixel intensities.

    Args:
        image: Input image (BGR or grayscale).

    Returns:
        Contrast score (higher means more contrast).
    """
    return float(to_grayscale(image).std())


class PreprocessingPipeline:
    """Deterministic document image preprocessing.

    Args:
        config: Preprocessing configuration (threshold and temp location).
    """

    def __init__(self, config: PreprocessingConfig) -> None:
        self.config = config

    def process(self, image: np.ndarray) -> tuple[np.ndarray, QualityMetrics]:
        """Run the preprocessing chain on an in-memory image.

        Args:
            image: Input document image (BGR or grayscale).

        Returns:
            Tuple of (binary_image, quality_metrics).
        """
        metrics = QualityMetrics(
            sharpness_before=calculate_sharpness(image),
            contrast_before=calculate_contrast(image),
            sharpness_after=0.0,
            contrast_after=0.0,
        )

        result = to_grayscale(image)
        result = normalize_histogram(result)
        result = sharpen(result)
        result = binarize_fixed(result, self.config.threshold)

        metrics.sharpness_after = calculate_sharpness(result)
        metrics.contrast_after = calculate_contrast(result)

        logger.info(
            "Preprocessing complete: sharpness %.1f->%.1f, contrast %.1f->%.1f",
            metrics.sharpness_before,
            metrics.sharpness_after,
            metrics.contrast_before,
            metrics.contrast_after,
        )
        return result, metrics

    @contextmanager
    def preprocessed_copy(
        self, image_path: Path
    ) -> Iterator[tuple[Path, QualityMetrics | None]]:
        """Yield the path of a preprocessed copy of an image file.

        The derived PNG is removed when the block exits, whether or not
        the caller raised. If preprocessing is disabled or the source
        cannot be decoded, the original path is yielded unchanged.

        Args:
            image_path: Source image on disk.

        Yields:
            Tuple of (path_to_ocr, quality_metrics or ``None``).
        """
        if not self.config.enabled:
            yield image_path, None
            return

        image = cv2.imread(str(image_path), cv2.IMREAD_COLOR)
        if image is None:
            logger.warning(
                "Could not decode %s for preprocessing, using original", image_path
            )
            yield image_path, None
            return

        processed, metrics = self.process(image)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{image_path.stem}.",
            suffix=".processed.png",
            dir=self.config.temp_dir,
        )
        os.close(fd)
        derived = Path(tmp_name)
        try:
            if not cv2.imwrite(str(derived), processed):
                logger.warning("Could not write %s, using original", derived)
                yield image_path, metrics
            else:
                yield derived, metrics
        finally:
            derived.unlink(missing_ok=True)
            logger.debug("Removed derived image %s", derived)
