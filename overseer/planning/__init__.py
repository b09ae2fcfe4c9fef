"""Planning module for Overseer.

This module handles rule-based work-item decomposition:
- Metadata extraction from work-item text
- Ordered decomposition rules and strategies
- Store instructions for applying a decomposition
"""

from overseer.planning.decomposition import DecompositionEngine
from overseer.planning.metadata import MetadataExtractor, extract_metadata
from overseer.planning.rules import DecompositionRule, RuleSet, builtin_rules
from overseer.planning.applier import apply_decomposition, build_instructions

__all__ = [
    'DecompositionEngine',
    'MetadataExtractor',
    'extract_metadata',
    'DecompositionRule',
    'RuleSet',
    'builtin_rules',
    'apply_decomposition',
    'build_instructions',
]
