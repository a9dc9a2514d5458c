"""Relation diffing for comparing two binary versions.

Records are compared by key (see the ``key`` property of each record type);
demangled names never take part. Duplicate keys are matched one-to-one, so
dropping one of two identical imports reports exactly one removal.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence

from binspect.data import Relations, Difference, ChangedData

logger = logging.getLogger(__name__)


def diff(old: Sequence[ChangedData], new: Sequence[ChangedData]) -> list[Difference]:
    """Compare one category of records.

    Returns removals in ``old`` order followed by additions in ``new`` order.
    """
    unmatched_new = Counter(record.key for record in new)
    removed = []
    for record in old:
        if unmatched_new[record.key]:
            unmatched_new[record.key] -= 1
        else:
            removed.append(Difference.removed(record))

    unmatched_old = Counter(record.key for record in old)
    added = []
    for record in new:
        if unmatched_old[record.key]:
            unmatched_old[record.key] -= 1
        else:
            added.append(Difference.added(record))

    return removed + added


def diff_relations(old: Relations, new: Relations) -> list[Difference]:
    """Compare dependencies, then imports, then exports."""
    differences = (
        diff(old.dependencies, new.dependencies)
        + diff(old.imports, new.imports)
        + diff(old.exports, new.exports)
    )
    logger.info(
        "Found %d differences (%d added, %d removed)",
        len(differences),
        sum(1 for d in differences if d.is_added),
        sum(1 for d in differences if d.is_removed),
    )
    return differences
