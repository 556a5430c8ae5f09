"""Change classification and diffing.

Submodules:
    masking     -- VolatilityMask: declared field paths ignored in comparisons.
    classifier  -- ChangeClassifier: suppresses Modified events that only touch
                   volatile fields.
    engine      -- Pure in-process diff over canonical YAML serializations.
    external    -- Optional git-based diff using per-call scratch directories.
"""

from kubedelta.diff.classifier import ChangeClassifier
from kubedelta.diff.engine import canonical_yaml, diff, diff_documents, render
from kubedelta.diff.external import external_diff
from kubedelta.diff.masking import VolatilityMask

__all__ = [
    "ChangeClassifier",
    "VolatilityMask",
    "canonical_yaml",
    "diff",
    "diff_documents",
    "external_diff",
    "render",
]
