# biotag/tagger.py

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Sequence

from biotag import codec
from biotag.codec import Direction
from biotag.ensemble import ModelOutput, checked_labels, combine
from biotag.errors import EnsembleUsageError
from biotag.models import Corpus, Sentence

logger = logging.getLogger(__name__)


class BaseTagger:
    """
    Interface of a sequence tagger.

    ``tag`` receives the sentence with its tokens already in the order the
    model reads them and returns labels in that same order.
    """

    name: str = "tagger"
    direction: Direction = Direction.FW

    def tag(self, sentence: Sentence) -> ModelOutput:
        raise NotImplementedError


@dataclass(frozen=True)
class LexiconTaggerConfig:
    feature_prefix: str = "LEXICON=PRGE"
    confidence: float = 0.5


class RuleBasedLexiconTagger(BaseTagger):
    """Marks every run of tokens carrying a lexicon feature as one entity."""

    name = "lexicon"

    def __init__(
        self,
        config: LexiconTaggerConfig | None = None,
        direction: Direction = Direction.FW,
    ) -> None:
        self.config = config or LexiconTaggerConfig()
        self.direction = direction

    def tag(self, sentence: Sentence) -> ModelOutput:
        hits = [
            any(f.startswith(self.config.feature_prefix) for f in t.features)
            for t in sentence.tokens
        ]
        spans = []
        i = 0
        while i < len(hits):
            if not hits[i]:
                i += 1
                continue
            end = i
            while end + 1 < len(hits) and hits[end + 1]:
                end += 1
            spans.append((i, end))
            i = end + 1

        labels = codec.encode(spans, len(hits), sentence.corpus.scheme, self.direction)
        return ModelOutput(
            labels=tuple(labels),
            score=math.log(self.config.confidence),
            log_z=0.0,
            direction=self.direction,
        )


def _tag_in_direction(tagger: BaseTagger, sentence: Sentence) -> ModelOutput:
    """Run ``tagger`` on a sentence held in forward order."""
    if tagger.direction is Direction.BW:
        sentence.reverse()
        try:
            out = tagger.tag(sentence)
        finally:
            sentence.reverse()
    else:
        out = tagger.tag(sentence)

    if out.direction is not tagger.direction:
        out = ModelOutput(out.labels, out.score, out.log_z, tagger.direction)
    return out


class Annotator:
    def __init__(self, corpus: Corpus, workers: int = 1):
        self.corpus = corpus
        self.workers = max(1, int(workers))

    def annotate(self, tagger: BaseTagger) -> None:
        """
        Annotate the corpus with a single model.

        Every sentence is tagged and checked before any label is replaced;
        the corpus direction is restored even when the tagger fails.
        """
        corpus = self.corpus
        reversed_corpus = corpus.ensure_direction(tagger.direction)
        try:
            outputs = [tagger.tag(s) for s in corpus]
            checked = [
                checked_labels(s, list(out.labels))
                for s, out in zip(corpus, outputs)
            ]
            for sentence, labels, out in zip(corpus, checked, outputs):
                sentence.clean_annotations()
                sentence.set_labels(labels)
                sentence.add_annotations_from_labels(out.confidence)
        finally:
            if reversed_corpus:
                corpus.reverse()
        logger.info(
            "Annotated %d sentences with model %s: %d annotations",
            len(corpus),
            tagger.name,
            corpus.annotation_count(),
        )

    def annotate_ensemble(self, taggers: Sequence[BaseTagger]) -> List[int]:
        """
        Annotate the corpus by picking, per sentence, the most confident of
        several models. Returns the winning model index per sentence.

        The corpus is left in forward direction. When a tagger fails, no
        sentence is changed and the corpus keeps its direction.
        """
        if len(taggers) < 2:
            logger.error("This method needs more than one model, got %d", len(taggers))
            raise EnsembleUsageError(
                f"Ensemble annotation needs at least two models, got {len(taggers)}"
            )

        corpus = self.corpus
        reversed_corpus = corpus.ensure_direction(Direction.FW)

        def run(sentence: Sentence) -> List[ModelOutput]:
            return [_tag_in_direction(t, sentence) for t in taggers]

        try:
            if self.workers > 1:
                with ThreadPoolExecutor(max_workers=self.workers) as pool:
                    outputs = list(pool.map(run, corpus.sentences))
            else:
                outputs = [run(s) for s in corpus.sentences]
            for sentence, outs in zip(corpus.sentences, outputs):
                for i, out in enumerate(outs):
                    checked_labels(sentence, out.forward_labels(), i)
        except Exception:
            if reversed_corpus:
                corpus.reverse()
            raise

        winners = [combine(s, outs) for s, outs in zip(corpus.sentences, outputs)]
        logger.info(
            "Annotated %d sentences combining %d models: %d annotations",
            len(corpus),
            len(taggers),
            corpus.annotation_count(),
        )
        return winners


__all__ = [
    "BaseTagger",
    "LexiconTaggerConfig",
    "RuleBasedLexiconTagger",
    "Annotator",
]
