# biotag/models.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple

from biotag import codec
from biotag.codec import Direction, EncodingScheme, Label
from biotag.errors import AnnotationRangeError, TaggingError

logger = logging.getLogger(__name__)


class EntityType(str, Enum):
    protein = "protein"
    DNA = "DNA"
    RNA = "RNA"
    cell_type = "cell_type"
    cell_line = "cell_line"

    @classmethod
    def parse(cls, value: "str | EntityType") -> "EntityType":
        if isinstance(value, EntityType):
            return value
        try:
            return cls(str(value).strip())
        except ValueError:
            raise ValueError(f"Unknown entity type: {value!r}") from None


@dataclass(eq=False)
class Token:
    text: str
    start: int
    end: int
    index: int
    label: Label = Label.O
    features: List[str] = field(default_factory=list)

    @classmethod
    def at(cls, text: str, start: int, index: int) -> "Token":
        # Offsets skip whitespace: the next token starts at end + 1.
        return cls(text=text, start=start, end=start + len(text) - 1, index=index)

    def add_feature(self, feature: str) -> None:
        if feature in self.features:
            return
        self.features.append(feature)

    def features_to_string(self) -> str:
        return "\t".join(self.features)


class Annotation:
    """
    Inclusive token range [start, end] inside one sentence, with a confidence.

    Equality only looks at the owning sentence and the range; the score is
    carried along but never compared.
    """

    __slots__ = ("sentence", "start", "end", "score")

    def __init__(self, sentence: "Sentence", start: int, end: int, score: float = 1.0):
        if start > end:
            raise AnnotationRangeError(f"Invalid annotation ({start},{end})")
        self.sentence = sentence
        self.start = start
        self.end = end
        self.score = score

    @property
    def span(self) -> Tuple[int, int]:
        return self.start, self.end

    def __len__(self) -> int:
        return self.end - self.start + 1

    @property
    def text(self) -> str:
        return " ".join(self.sentence.tokens[i].text for i in range(self.start, self.end + 1))

    @property
    def char_start(self) -> int:
        return self.sentence.tokens[self.start].start

    @property
    def char_end(self) -> int:
        return self.sentence.tokens[self.end].end

    def overlaps_by_nesting(self, other: "Annotation") -> bool:
        """True when one range holds the other, whichever way round."""
        if self.sentence is not other.sentence:
            return False
        if self.start <= other.start and self.end >= other.end:
            return True
        if other.start <= self.start and other.end >= self.end:
            return True
        return False

    def intersects(self, other: "Annotation") -> bool:
        return self.start <= other.end and self.end >= other.start

    def with_range(self, start: int, end: int) -> "Annotation":
        return Annotation(self.sentence, start, end, self.score)

    def sort_key(self) -> Tuple[int, int]:
        return self.start, self.end

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Annotation):
            return NotImplemented
        return (
            self.sentence is other.sentence
            and self.start == other.start
            and self.end == other.end
        )

    def __hash__(self) -> int:
        return hash((id(self.sentence), self.start, self.end))

    def __repr__(self) -> str:
        return f"Annotation({self.start},{self.end}, score={self.score:.4f})"


class Sentence:
    def __init__(self, corpus: "Corpus", sentence_id: str = ""):
        self.corpus = corpus
        self.id = sentence_id
        self.tokens: List[Token] = []
        self.annotations: List[Annotation] = []

    # --- tokens -----------------------------------------------------------

    def add_token(self, token: Token) -> None:
        self.tokens.append(token)

    def append_text(self, text: str) -> Token:
        """Append a token for ``text`` with offsets following the last token."""
        start = self.tokens[-1].end + 1 if self.tokens else 0
        token = Token.at(text, start, len(self.tokens))
        self.tokens.append(token)
        return token

    def size(self) -> int:
        return len(self.tokens)

    def __len__(self) -> int:
        return len(self.tokens)

    def __iter__(self) -> Iterator[Token]:
        return iter(self.tokens)

    @property
    def text(self) -> str:
        return " ".join(t.text for t in self.tokens)

    @property
    def labels(self) -> List[Label]:
        return [t.label for t in self.tokens]

    def set_labels(self, labels: Sequence[Label]) -> None:
        if len(labels) != len(self.tokens):
            raise TaggingError(
                f"Sentence {self.id!r} has {len(self.tokens)} tokens "
                f"but {len(labels)} labels were given"
            )
        parsed = [Label.parse(v) for v in labels]
        for token, label in zip(self.tokens, parsed):
            token.label = label

    # --- annotations ------------------------------------------------------

    def _direction(self, direction: Optional[Direction]) -> Direction:
        return direction if direction is not None else self.corpus.direction

    def add_annotation(self, annotation: Annotation, direction: Optional[Direction] = None) -> None:
        if annotation.sentence is not self:
            raise AnnotationRangeError("Annotation belongs to another sentence")
        labels = self.labels
        codec.write_span(
            labels,
            annotation.start,
            annotation.end,
            self.corpus.scheme,
            self._direction(direction),
        )
        for i in range(annotation.start, annotation.end + 1):
            self.tokens[i].label = labels[i]
        self.annotations.append(annotation)

    def remove_annotation(self, annotation: Annotation) -> None:
        for i in range(annotation.start, annotation.end + 1):
            self.tokens[i].label = Label.O
        self.annotations.remove(annotation)

    def clean_annotations(self) -> None:
        self.annotations = []
        for token in self.tokens:
            token.label = Label.O

    def add_annotations_from_labels(
        self, score: float = 1.0, direction: Optional[Direction] = None
    ) -> List[Annotation]:
        """Decode the current token labels and append the resulting annotations."""
        spans = codec.decode(self.labels, self.corpus.scheme, self._direction(direction))
        added = [Annotation(self, start, end, score) for start, end in spans]
        self.annotations.extend(added)
        return added

    def find_exact(self, annotation: Optional[Annotation]) -> Optional[Annotation]:
        if annotation is None:
            return None
        for existing in self.annotations:
            if existing == annotation:
                return existing
        return None

    def find_nesting(self, annotation: Optional[Annotation]) -> Optional[Annotation]:
        if annotation is None:
            return None
        for existing in self.annotations:
            if existing.overlaps_by_nesting(annotation):
                return existing
        return None

    def reverse(self) -> None:
        """Reverse token order, renumber tokens and mirror every annotation range."""
        self.tokens.reverse()
        for i, token in enumerate(self.tokens):
            token.index = i
        size = len(self.tokens)
        mirrored: List[Annotation] = []
        for a in self.annotations:
            start, end = codec.reverse_span(a.start, a.end, size)
            mirrored.append(Annotation(self, start, end, a.score))
        self.annotations = mirrored

    def sorted_annotations(self) -> List[Annotation]:
        return sorted(self.annotations, key=Annotation.sort_key)

    # --- persisted record -------------------------------------------------

    def to_record_lines(self) -> List[str]:
        lines = []
        for t in self.tokens:
            parts = [t.text]
            parts.extend(t.features)
            parts.append(t.label.value)
            lines.append("\t".join(parts))
        return lines

    def __repr__(self) -> str:
        return f"Sentence(id={self.id!r}, tokens={len(self.tokens)}, annotations={len(self.annotations)})"


@dataclass(eq=False)
class Corpus:
    scheme: EncodingScheme = EncodingScheme.BIO
    entity: EntityType = EntityType.protein
    sentences: List[Sentence] = field(default_factory=list)
    direction: Direction = Direction.FW

    def new_sentence(self, sentence_id: str = "") -> Sentence:
        sentence = Sentence(self, sentence_id)
        self.sentences.append(sentence)
        return sentence

    def add_sentence(self, sentence: Sentence) -> None:
        sentence.corpus = self
        self.sentences.append(sentence)

    def __len__(self) -> int:
        return len(self.sentences)

    def __iter__(self) -> Iterator[Sentence]:
        return iter(self.sentences)

    def __getitem__(self, i: int) -> Sentence:
        return self.sentences[i]

    def clean_annotations(self) -> None:
        for s in self.sentences:
            s.clean_annotations()

    def reverse(self) -> None:
        for s in self.sentences:
            s.reverse()
        self.direction = self.direction.flipped()
        logger.debug("Corpus reversed, direction is now %s", self.direction.value)

    def ensure_direction(self, direction: Direction) -> bool:
        """Reverse the corpus if needed; returns True when it was reversed."""
        if self.direction is direction:
            return False
        self.reverse()
        return True

    def annotation_count(self) -> int:
        return sum(len(s.annotations) for s in self.sentences)

    def forbidden_pattern(self):
        return codec.forbidden_pattern(self.scheme, self.direction)

    def allowed_labels(self) -> Tuple[Label, ...]:
        return codec.allowed_labels(self.scheme)
