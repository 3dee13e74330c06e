"""Export a subset of a vault with consistent links."""

from .analyzer import ExportLinkAnalyzer, LinkAnalysis
from .backlinks import BacklinksHandler
from .normalizer import FilenameNormalizer, slugify
from .processor import ExportProcessor, export_vault
from .rewriter import STRATEGIES, ExportLinkRewriter, get_strategy

__all__ = [
    "STRATEGIES",
    "BacklinksHandler",
    "ExportLinkAnalyzer",
    "ExportLinkRewriter",
    "ExportProcessor",
    "FilenameNormalizer",
    "LinkAnalysis",
    "export_vault",
    "get_strategy",
    "slugify",
]
