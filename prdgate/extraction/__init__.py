"""
prdgate Extraction Package

AI entity extraction, its response normalizer and the review workflow.
"""

from prdgate.extraction.extractor import EntityExtractionService
from prdgate.extraction.normalizer import parse_extraction_response
from prdgate.extraction.workflow import EntityExtractionWorkflow, ExtractionMode

__all__ = [
    "EntityExtractionService",
    "EntityExtractionWorkflow",
    "ExtractionMode",
    "parse_extraction_response",
]
