"""Batch supporting-document extraction.

Turns scanned lab reports, packaging photos and certificates attached to a
product batch into structured, confidence-scored facts using Tesseract OCR,
OpenCV preprocessing and heuristic pattern matching.
"""

__version__ = "1.0.0"
