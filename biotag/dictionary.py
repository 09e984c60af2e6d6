# biotag/dictionary.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

import regex as re
import spacy
from spacy.lang.en.stop_words import STOP_WORDS
from spacy.matcher import PhraseMatcher
from spacy.tokens import Doc
from spacy.util import filter_spans

from biotag.errors import ConfigError
from biotag.models import Corpus, Sentence

logger = logging.getLogger(__name__)

_LETTER_DIGIT = re.compile(r"([A-Za-z])([0-9])")
_DIGIT_LETTER = re.compile(r"([0-9])([A-Za-z])")

MIN_TERM_LENGTH = 3


def variants(name: str) -> List[str]:
    """Spelling variants of a lexicon entry (hyphen/space swaps, symbol prefixes)."""
    out: List[str] = []

    def add(v: str) -> None:
        if v != name and v not in out:
            out.append(v)

    add(name.replace(" ", "-"))
    add(name.replace("-", " "))
    add(name.replace(" ", ""))
    add(name.replace("-", ""))

    hyphenated = _LETTER_DIGIT.sub(r"\1-\2", name)
    add(_DIGIT_LETTER.sub(r"\1-\2", hyphenated))

    # Upper-case gene symbols also appear as hSYMBOL and hSYMBOLp.
    if name == name.upper() and any(ch.isalpha() for ch in name):
        add("h" + name)
        add("h" + name + "p")

    return out


def _read_lines(path: str | Path) -> List[str]:
    with open(path, "r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]


class DictionaryMatcher:
    """
    Exact, case-insensitive lexicon matcher over pre-tokenized sentences.

    Every token covered by a lexicon hit gets a ``LEXICON=<kind>`` feature.
    Overlapping hits are reduced to the longest ones.
    """

    def __init__(
        self,
        terms: Iterable[str],
        kind: str = "PRGE",
        stopwords: Optional[Iterable[str]] = None,
        with_variations: bool = False,
        nlp: "spacy.language.Language | None" = None,
    ) -> None:
        self.kind = kind
        self._nlp = nlp or spacy.blank("en")
        self._matcher = PhraseMatcher(self._nlp.vocab, attr="LOWER")

        stop = {w.lower() for w in (stopwords if stopwords is not None else STOP_WORDS)}
        seen = set()
        patterns = []
        for term in terms:
            candidates = (variants(term) if with_variations else []) + [term]
            for v in candidates:
                key = v.lower()
                if len(v) < MIN_TERM_LENGTH or key in stop or key in seen:
                    continue
                seen.add(key)
                patterns.append(self._nlp.make_doc(v))

        if patterns:
            self._matcher.add(kind, patterns)
        self.size = len(patterns)
        logger.debug("Lexicon %s loaded with %d entries", kind, self.size)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        kind: str = "PRGE",
        stopwords_path: str | Path | None = None,
        with_variations: bool = False,
    ) -> "DictionaryMatcher":
        terms = _read_lines(path)
        stopwords = _read_lines(stopwords_path) if stopwords_path else None
        logger.info("Loading lexicon %s from %s (%d lines)", kind, path, len(terms))
        return cls(terms, kind=kind, stopwords=stopwords, with_variations=with_variations)

    @property
    def feature(self) -> str:
        return f"LEXICON={self.kind}"

    def match_sentence(self, sentence: Sentence) -> List[bool]:
        words = [t.text for t in sentence.tokens]
        flags = [False] * len(words)
        if not words or self.size == 0:
            return flags

        doc = Doc(self._nlp.vocab, words=words)
        spans = filter_spans(self._matcher(doc, as_spans=True))
        for span in spans:
            for i in range(span.start, span.end):
                flags[i] = True
        return flags

    def match(self, target: Corpus | Sentence) -> int:
        """Add lexicon features to the tokens of a sentence or a whole corpus."""
        sentences = [target] if isinstance(target, Sentence) else list(target)
        hits = 0
        for sentence in sentences:
            for token, flag in zip(sentence.tokens, self.match_sentence(sentence)):
                if flag:
                    token.add_feature(self.feature)
                    hits += 1
        return hits


class DictionaryMatchers:
    """Explicit name -> matcher table handed to whoever builds sentences."""

    def __init__(self, matchers: Optional[Mapping[str, DictionaryMatcher]] = None):
        self._matchers: Dict[str, DictionaryMatcher] = dict(matchers or {})

    def add(self, name: str, matcher: DictionaryMatcher) -> None:
        self._matchers[name] = matcher

    def get(self, name: str) -> Optional[DictionaryMatcher]:
        return self._matchers.get(name)

    def __getitem__(self, name: str) -> DictionaryMatcher:
        try:
            return self._matchers[name]
        except KeyError:
            raise ConfigError(f"No lexicon named {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._matchers

    def __len__(self) -> int:
        return len(self._matchers)

    def names(self) -> List[str]:
        return list(self._matchers)

    def match(self, target: Corpus | Sentence) -> None:
        for name, matcher in self._matchers.items():
            hits = matcher.match(target)
            logger.debug("Lexicon %s tagged %d tokens", name, hits)
