"""ragcore ingest pipeline — extraction, segmentation and embedding."""

from ragcore.ingest.extract import extract_text, guess_content_type
from ragcore.ingest.pipeline import IngestResult, IngestService
from ragcore.ingest.splitter import TextChunk, TextSplitter

__all__ = [
    "IngestResult",
    "IngestService",
    "TextChunk",
    "TextSplitter",
    "extract_text",
    "guess_content_type",
]
