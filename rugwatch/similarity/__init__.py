"""Cross-referencing of warnings against confirmed cases (tag + network filter)."""

from rugwatch.similarity.index import SimilarCase, SimilarityIndex

__all__ = ["SimilarCase", "SimilarityIndex"]
