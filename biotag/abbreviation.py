# biotag/abbreviation.py

"""
Abbreviation-pair boundary correction.

Short form / long form pairs such as "Interleukin 2 ( IL2 )" are found in
each sentence; when either member is already annotated, the other member is
annotated too, so a finding on one form carries over to its partner.

Pair extraction follows Schwartz & Hearst (2003), "A Simple Algorithm for
Identifying Abbreviation Definitions in Biomedical Text".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import regex as re

from biotag.models import Annotation, Corpus, Sentence

logger = logging.getLogger(__name__)

_PARENS_RE = re.compile(r"\(([^()]+)\)")
_LAST_WORD_RE = re.compile(r"(\S+)\s*$")
_SHORT_FORM_RE = re.compile(r"^[\p{L}\p{N}][\p{L}\p{N}\-/.+' ]*$")


def _clean_ws(s: str) -> str:
    return re.sub(r"\s+", " ", s or "").strip()


class AbbreviationExtractor:
    """Finds short form -> long form pairs in a piece of text."""

    def extract(self, text: str) -> Dict[str, str]:
        raise NotImplementedError


@dataclass
class SchwartzHearstExtractor(AbbreviationExtractor):
    min_sf_length: int = 2
    max_sf_length: int = 10
    max_sf_words: int = 2

    def looks_like_short_form(self, sf: str) -> bool:
        sf = _clean_ws(sf)
        compact = sf.replace(" ", "")
        if len(compact) < self.min_sf_length or len(compact) > self.max_sf_length:
            return False
        if len(sf.split(" ")) > self.max_sf_words:
            return False
        if not _SHORT_FORM_RE.match(sf):
            return False
        return any(ch.isalpha() for ch in sf)

    def extract(self, text: str) -> Dict[str, str]:
        pairs: Dict[str, str] = {}

        for m in _PARENS_RE.finditer(text):
            inside = _clean_ws(m.group(1))
            if not inside:
                continue
            preceding = text[: m.start()]

            # long form ( SF )
            if self.looks_like_short_form(inside):
                lf = self.find_long_form(inside, self._window(inside, preceding))
                if lf:
                    pairs.setdefault(inside, lf)
                continue

            # SF ( long form )
            prev = _LAST_WORD_RE.search(preceding)
            if prev is None:
                continue
            sf = prev.group(1)
            if not self.looks_like_short_form(sf):
                continue
            if self.find_long_form(sf, inside) == inside:
                pairs.setdefault(sf, inside)

        return pairs

    def _window(self, sf: str, preceding: str) -> str:
        # At most min(|SF| + 5, 2 * |SF|) words before the parenthesis.
        n = len(sf.replace(" ", ""))
        words = preceding.split()
        limit = min(n + 5, n * 2)
        return " ".join(words[-limit:])

    @staticmethod
    def find_long_form(sf: str, candidate: str) -> Optional[str]:
        """
        Align the short form characters right to left against ``candidate``.
        The first short form character must start a word.
        """
        sf = sf.strip()
        lf = candidate.strip()
        if not sf or not lf:
            return None

        s = len(sf) - 1
        j = len(lf) - 1
        while s >= 0:
            c = sf[s].lower()
            if not c.isalnum():
                s -= 1
                continue
            while j >= 0 and (
                lf[j].lower() != c or (s == 0 and j > 0 and lf[j - 1].isalnum())
            ):
                j -= 1
            if j < 0:
                return None
            j -= 1
            s -= 1

        start = lf.rfind(" ", 0, j + 1) + 1
        long_form = lf[start:]
        if not long_form or long_form == sf or len(long_form) <= len(sf):
            return None
        return long_form


def span_from_text(sentence: Sentence, text: str) -> Optional[Annotation]:
    """
    First run of tokens whose texts equal the words of ``text`` in order,
    as a score 0.0 annotation; None when the words never line up.
    """
    words = text.split()
    if not words:
        return None
    tokens = sentence.tokens
    n = len(words)
    for i in range(len(tokens) - n + 1):
        if all(tokens[i + j].text == words[j] for j in range(n)):
            return Annotation(sentence, i, i + n - 1, 0.0)
    return None


def _has_match(sentence: Sentence, a: Annotation) -> bool:
    return sentence.find_exact(a) is not None or sentence.find_nesting(a) is not None


def process(corpus: Corpus, extractor: AbbreviationExtractor | None = None) -> int:
    """
    Annotate the partner of every already annotated abbreviation member.

    For each pair, when the short or the long form is annotated (exactly or
    by nesting overlap):
      - the short form is added if nothing matches it yet
      - the long form is added if nothing matches it yet
      - a long form matched only by nesting overlap replaces that annotation

    Returns the number of annotations added or replaced.
    """
    extractor = extractor or SchwartzHearstExtractor()
    changes = 0

    for sentence in corpus:
        pairs = extractor.extract(sentence.text)
        for short_text, long_text in pairs.items():
            short = span_from_text(sentence, short_text)
            long = span_from_text(sentence, long_text)
            if short is None or long is None:
                logger.debug(
                    "Pair %r / %r not aligned to tokens in %r", short_text, long_text, sentence.id
                )
                continue

            if not (_has_match(sentence, short) or _has_match(sentence, long)):
                continue

            if not _has_match(sentence, short):
                sentence.add_annotation(short)
                changes += 1
                logger.debug("Added short form %r in %r", short_text, sentence.id)

            if not _has_match(sentence, long):
                sentence.add_annotation(long)
                changes += 1
                logger.debug("Added long form %r in %r", long_text, sentence.id)
            elif sentence.find_exact(long) is None:
                partial = sentence.find_nesting(long)
                sentence.remove_annotation(partial)
                sentence.add_annotation(long)
                changes += 1
                logger.debug("Replaced %r with long form %r in %r", partial.text, long_text, sentence.id)

    logger.info("Abbreviations: %d annotations added or replaced", changes)
    return changes


__all__ = [
    "AbbreviationExtractor",
    "SchwartzHearstExtractor",
    "span_from_text",
    "process",
]
