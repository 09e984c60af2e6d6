# biotag/parentheses.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from biotag.models import Annotation, Corpus, Sentence, Token

logger = logging.getLogger(__name__)

OPEN_CHARS = "([{"
CLOSE_CHARS = ")]}"


@dataclass
class CorrectionReport:
    kept: int = 0
    corrected: int = 0
    removed: int = 0

    def total(self) -> int:
        return self.kept + self.corrected + self.removed


def has_open(token: Token) -> bool:
    return any(ch in token.text for ch in OPEN_CHARS)


def has_close(token: Token) -> bool:
    return any(ch in token.text for ch in CLOSE_CHARS)


def has_bracket(token: Token) -> bool:
    return has_open(token) or has_close(token)


def bracket_counts(sentence: Sentence, start: int, end: int) -> tuple[int, int]:
    opened = closed = 0
    for k in range(start, end + 1):
        token = sentence.tokens[k]
        if has_open(token):
            opened += 1
        if has_close(token):
            closed += 1
    return opened, closed


def is_balanced(annotation: Annotation) -> bool:
    opened, closed = bracket_counts(annotation.sentence, annotation.start, annotation.end)
    return opened == closed


def _first_balanced(a: Annotation, ranges: Iterator[tuple[int, int, int]]) -> Optional[Annotation]:
    """
    ``ranges`` yields (probe, start, end): the candidate range is only tried
    when the token at ``probe`` carries a bracket.
    """
    tokens = a.sentence.tokens
    for probe, start, end in ranges:
        if not has_bracket(tokens[probe]):
            continue
        candidate = a.with_range(start, end)
        if is_balanced(candidate):
            return candidate
    return None


def extend_left(a: Annotation) -> Optional[Annotation]:
    return _first_balanced(a, ((k, k, a.end) for k in range(a.start - 1, -1, -1)))


def extend_right(a: Annotation) -> Optional[Annotation]:
    size = len(a.sentence)
    return _first_balanced(a, ((k, a.start, k) for k in range(a.end + 1, size)))


def shrink_left(a: Annotation) -> Optional[Annotation]:
    return _first_balanced(a, ((k, k + 1, a.end) for k in range(a.start, a.end)))


def shrink_right(a: Annotation) -> Optional[Annotation]:
    return _first_balanced(a, ((k, a.start, k - 1) for k in range(a.end, a.start, -1)))


_STRATEGIES: tuple[Callable[[Annotation], Optional[Annotation]], ...] = (
    extend_left,
    extend_right,
    shrink_left,
    shrink_right,
)


def correct(a: Annotation) -> Optional[Annotation]:
    """First balanced replacement for ``a``, or None when nothing balances."""
    for strategy in _STRATEGIES:
        fixed = strategy(a)
        if fixed is not None:
            return fixed
    return None


def process_removing(corpus: Corpus) -> CorrectionReport:
    """Drop every annotation whose bracket counts differ."""
    report = CorrectionReport()
    for sentence in corpus:
        for a in list(sentence.annotations):
            if is_balanced(a):
                report.kept += 1
                continue
            sentence.remove_annotation(a)
            report.removed += 1
            logger.debug("Removed unbalanced annotation %r in %r", a.text, sentence.id)

    logger.info(
        "Parentheses (removing): kept=%d removed=%d", report.kept, report.removed
    )
    return report


def process_correcting(corpus: Corpus) -> CorrectionReport:
    """
    Repair unbalanced annotations.

    Tries, in order, to extend left, extend right, shrink left and shrink
    right; the first balanced range replaces the annotation. Annotations
    that cannot be balanced are dropped.
    """
    report = CorrectionReport()
    for sentence in corpus:
        for a in list(sentence.annotations):
            if is_balanced(a):
                report.kept += 1
                continue

            fixed = correct(a)
            sentence.remove_annotation(a)
            if fixed is None:
                report.removed += 1
                logger.debug("Removed unbalanced annotation %r in %r", a.text, sentence.id)
                continue

            sentence.add_annotation(fixed)
            report.corrected += 1
            logger.debug(
                "Corrected %r -> %r in %r", a.text, fixed.text, sentence.id
            )

    logger.info(
        "Parentheses (correcting): kept=%d corrected=%d removed=%d",
        report.kept,
        report.corrected,
        report.removed,
    )
    return report


__all__ = [
    "CorrectionReport",
    "is_balanced",
    "extend_left",
    "extend_right",
    "shrink_left",
    "shrink_right",
    "correct",
    "process_removing",
    "process_correcting",
]
