"""Comparison of extracted records."""

from binspect.analysis.diff import diff, diff_relations

__all__ = ["diff", "diff_relations"]
