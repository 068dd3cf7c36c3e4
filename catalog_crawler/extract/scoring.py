"""Selector scoring: pick the candidate selector that best targets a page."""

import logging
import math
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from catalog_crawler.extract.selectors import ComputedSelector, QueryScope, Selector, parse_selector

logger = logging.getLogger(__name__)

# (pattern, weight) pairs summed over every occurrence in the selector text
_ID_PATTERN = re.compile(r"#[\w-]+|\[id[*^$~|]?=")
_CLASS_ATTR_PSEUDO_PATTERN = re.compile(r"\.[\w-]+|\[[\w-]+[*^$~|]?=|:[\w-]+(?:\([^)]*\))?")
_ELEMENT_PATTERN = re.compile(r"(?:^|[\s>+~])([a-zA-Z][\w-]*)")
_DESCENDANT_PATTERN = re.compile(r"\s+(?![>+~\s])")
_CHILD_PATTERN = re.compile(r">")
_NOT_PATTERN = re.compile(r":not\([^)]+\)")
_HAS_PATTERN = re.compile(r":has\([^)]+\)")

SPECIFICITY_WEIGHTS = (
    (_ID_PATTERN, 100),
    (_CLASS_ATTR_PSEUDO_PATTERN, 10),
    (_ELEMENT_PATTERN, 1),
    (_DESCENDANT_PATTERN, 5),
    (_CHILD_PATTERN, 3),
    (_NOT_PATTERN, 8),
    (_HAS_PATTERN, 12),
)


@dataclass
class ScoredSelector:
    """A candidate selector with its match count and scores."""

    selector: Selector
    match_count: int
    specificity_score: int
    combined_score: int

    @property
    def raw(self) -> str:
        return self.selector.raw


def calculate_specificity(selector: str) -> int:
    """
    Heuristic specificity of a selector string.

    IDs weigh 100, classes/attributes/pseudo-classes 10, element names 1,
    descendant combinators 5, child combinators 3, ``:not()`` 8, ``:has()``
    12, plus one point per 10 characters.
    """
    text = selector.strip()
    score = 0
    for pattern, weight in SPECIFICITY_WEIGHTS:
        score += len(pattern.findall(text)) * weight
    score += math.floor(len(text) / 10)
    return score


def count_matches(scope: QueryScope, selector: Selector) -> int:
    """Number of elements matched; invalid selectors count as zero."""
    if isinstance(selector, ComputedSelector):
        return 0
    try:
        return len(selector.select(scope))
    except Exception as e:
        logger.debug(f"Selector {selector.raw!r} failed to evaluate: {e}")
        return 0


def score_selectors(scope: QueryScope, selectors: Sequence[Selector | str]) -> list[ScoredSelector]:
    """
    Score every candidate against a scope, keeping input order.

    Args:
        scope: Document or element scope
        selectors: Ordered candidates (parsed or raw strings)

    Returns:
        One ScoredSelector per candidate
    """
    scored = []
    for entry in selectors:
        selector = parse_selector(entry)
        match_count = count_matches(scope, selector)
        specificity = calculate_specificity(selector.raw)
        combined = specificity * 1000 + match_count if match_count > 0 else 0
        scored.append(
            ScoredSelector(
                selector=selector,
                match_count=match_count,
                specificity_score=specificity,
                combined_score=combined,
            )
        )
    return scored


def pick_best(scope: QueryScope, selectors: Sequence[Selector | str]) -> Optional[ScoredSelector]:
    """
    Pick the best matching selector.

    Returns:
        Highest combined score among selectors with at least one match, the
        first listed winning ties; None when nothing matches.
    """
    if not selectors:
        return None

    matching = [s for s in score_selectors(scope, selectors) if s.match_count > 0]
    if not matching:
        return None

    # sorted() is stable, so equal scores keep configuration order
    best = sorted(matching, key=lambda s: s.combined_score, reverse=True)[0]
    logger.debug(
        f"Best selector {best.raw!r}: {best.match_count} matches, "
        f"specificity {best.specificity_score}"
    )
    return best
