# biotag/ensemble.py

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from biotag import codec
from biotag.codec import Direction, Label
from biotag.errors import EnsembleUsageError, TaggingError
from biotag.models import Annotation, Corpus, Sentence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelOutput:
    """
    Result of one tagger on one sentence.

    ``labels`` are in the order the model read the tokens, so a backward
    model lists them last token first. ``score`` is the weight of the
    predicted sequence and ``log_z`` the weight of all sequences.
    """

    labels: Tuple[Label, ...]
    score: float
    log_z: float = 0.0
    direction: Direction = Direction.FW

    @classmethod
    def from_confidence(
        cls,
        labels: Sequence[Label | str],
        confidence: float,
        direction: Direction = Direction.FW,
    ) -> "ModelOutput":
        if not 0.0 < confidence <= 1.0:
            raise ValueError(f"Confidence must be in (0, 1], got {confidence}")
        return cls(
            labels=tuple(Label.parse(v) for v in labels),
            score=math.log(confidence),
            log_z=0.0,
            direction=direction,
        )

    @property
    def confidence(self) -> float:
        return math.exp(self.score - self.log_z)

    def forward_labels(self) -> List[Label]:
        labels = [Label.parse(v) for v in self.labels]
        if self.direction is Direction.BW:
            labels.reverse()
        return labels


def select_best(outputs: Sequence[ModelOutput]) -> int:
    """Index of the most confident output; the earliest one wins ties."""
    best = 0
    best_conf = outputs[0].confidence
    for i in range(1, len(outputs)):
        conf = outputs[i].confidence
        if conf > best_conf:
            best = i
            best_conf = conf
    return best


def checked_labels(
    sentence: Sentence, labels: Sequence[Label], model: int = 0
) -> List[Label]:
    """Labels of one model output, checked against the sentence size and scheme."""
    if len(labels) != len(sentence):
        raise TaggingError(
            f"Model {model} returned {len(labels)} labels for sentence "
            f"{sentence.id!r} with {len(sentence)} tokens"
        )
    return codec.check_labels(labels, sentence.corpus.scheme)


def combine(sentence: Sentence, outputs: Sequence[ModelOutput]) -> int:
    """
    Replace the sentence's labels and annotations with the most confident
    model output. Returns the index of the winning output.

    Every output is validated before the sentence is touched, so a failure
    leaves it as it was.
    """
    if len(outputs) < 2:
        logger.error("Model combination needs at least two models, got %d", len(outputs))
        raise EnsembleUsageError(
            f"Combining needs at least two model outputs, got {len(outputs)}"
        )

    normalized = [
        checked_labels(sentence, out.forward_labels(), i)
        for i, out in enumerate(outputs)
    ]

    winner = select_best(outputs)
    labels = normalized[winner]
    direction = sentence.corpus.direction
    if direction is Direction.BW:
        labels = list(reversed(labels))

    sentence.clean_annotations()
    sentence.set_labels(labels)
    sentence.add_annotations_from_labels(outputs[winner].confidence, direction)
    logger.debug(
        "Sentence %r: model %d wins with confidence %.4f",
        sentence.id,
        winner,
        outputs[winner].confidence,
    )
    return winner


def merge_annotations(annotations: Sequence[Annotation]) -> List[Annotation]:
    """
    Keep one annotation per group of intersecting candidates.

    Candidates are sorted by (start, end); each one is grouped with every
    later candidate that intersects it, the highest score in the group is
    kept (first on ties) and the scan resumes after the last group member.
    """
    ordered = sorted(annotations, key=Annotation.sort_key)
    kept: List[Annotation] = []

    j = 0
    while j < len(ordered):
        first = ordered[j]
        group = [first]
        last_match = j
        for k in range(j + 1, len(ordered)):
            if first.intersects(ordered[k]):
                group.append(ordered[k])
                last_match = k

        best = group[0]
        for candidate in group[1:]:
            if candidate.score > best.score:
                best = candidate
        kept.append(best)
        j = last_match + 1

    kept.sort(key=Annotation.sort_key)
    return kept


def merge_corpora(corpora: Sequence[Corpus]) -> List[List[Annotation]]:
    """
    Pool the annotations that several independently annotated copies of
    the same corpus hold for each sentence and resolve overlaps.

    The returned annotations belong to the sentences of ``corpora[0]``.
    """
    if len(corpora) < 2:
        logger.error("Merging needs at least two corpora, got %d", len(corpora))
        raise EnsembleUsageError(f"Merging needs at least two corpora, got {len(corpora)}")

    base = corpora[0]
    for c in corpora[1:]:
        if len(c) != len(base):
            raise EnsembleUsageError(
                f"Corpora differ in size: {len(base)} vs {len(c)} sentences"
            )
        if c.direction is not base.direction:
            raise EnsembleUsageError("Corpora must share the same traversal direction")

    merged: List[List[Annotation]] = []
    for i, sentence in enumerate(base):
        pooled = [
            Annotation(sentence, a.start, a.end, a.score)
            for c in corpora
            for a in c[i].annotations
        ]
        merged.append(merge_annotations(pooled))
    return merged


def apply_merged(corpora: Sequence[Corpus]) -> Corpus:
    """Write the merged annotations of ``corpora`` into the first corpus."""
    merged = merge_corpora(corpora)
    base = corpora[0]
    for sentence, annotations in zip(base, merged):
        sentence.clean_annotations()
        for a in annotations:
            sentence.add_annotation(a)
    logger.info(
        "Merged %d corpora into %d annotations", len(corpora), base.annotation_count()
    )
    return base


__all__ = [
    "ModelOutput",
    "select_best",
    "checked_labels",
    "combine",
    "merge_annotations",
    "merge_corpora",
    "apply_merged",
]
