"""Per-source attribute extraction."""

from libs.extraction.extractor import AttributeExtractor, synthetic_id
from libs.extraction.sources import SourceProfile, StrategySpec, get_profile, load_profiles

__all__ = [
    "AttributeExtractor",
    "synthetic_id",
    "SourceProfile",
    "StrategySpec",
    "get_profile",
    "load_profiles",
]
