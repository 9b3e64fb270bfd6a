"""Card scanning: photo in, hero stats and portrait out."""

from .models import AIExtraction, ExtractedStats, ScanResult, StoredCardData
from .config import ScannerConfig
from .image_utils import center_crop, image_to_data_url, normalize_to_icon, resize_image
from .storage import CardStore
from .stats_parser import parse_stats
from .ocr import LocalOCRExtractor, OCREngineError, OCRTimeoutError, TesseractEngine
from .post_process import find_image, find_stats, strip_markdown_fences
from .client import RemoteVisionExtractor
from .scanner import CardScanner, ProgressReporter
from .utils import ScanError

__all__ = [
    "AIExtraction",
    "ExtractedStats",
    "ScanResult",
    "StoredCardData",
    "ScannerConfig",
    "center_crop",
    "image_to_data_url",
    "normalize_to_icon",
    "resize_image",
    "CardStore",
    "parse_stats",
    "LocalOCRExtractor",
    "OCREngineError",
    "OCRTimeoutError",
    "TesseractEngine",
    "find_image",
    "find_stats",
    "strip_markdown_fences",
    "RemoteVisionExtractor",
    "CardScanner",
    "ProgressReporter",
    "ScanError",
]
