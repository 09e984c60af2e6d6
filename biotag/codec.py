# biotag/codec.py

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

import regex as re

from biotag.errors import AnnotationRangeError, InvalidLabelError


class Direction(str, Enum):
    FW = "FW"
    BW = "BW"

    def flipped(self) -> "Direction":
        return Direction.BW if self is Direction.FW else Direction.FW

    @classmethod
    def parse(cls, value: "str | Direction") -> "Direction":
        if isinstance(value, Direction):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown traversal direction: {value!r}") from None


class EncodingScheme(str, Enum):
    IO = "IO"
    BIO = "BIO"
    BMEWO = "BMEWO"

    @classmethod
    def parse(cls, value: "str | EncodingScheme") -> "EncodingScheme":
        if isinstance(value, EncodingScheme):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown encoding scheme: {value!r}") from None


class Label(str, Enum):
    B = "B"
    I = "I"  # noqa: E741
    O = "O"  # noqa: E741
    M = "M"
    E = "E"
    W = "W"

    @classmethod
    def parse(cls, value: "str | Label") -> "Label":
        if isinstance(value, Label):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidLabelError(f"Unknown label: {value!r}") from None


Span = Tuple[int, int]

_ALPHABETS: Dict[EncodingScheme, FrozenSet[Label]] = {
    EncodingScheme.IO: frozenset({Label.I, Label.O}),
    EncodingScheme.BIO: frozenset({Label.B, Label.I, Label.O}),
    EncodingScheme.BMEWO: frozenset({Label.B, Label.M, Label.E, Label.W, Label.O}),
}

# Labels that open a span when the decoder meets them.
_STARTERS: Dict[EncodingScheme, FrozenSet[Label]] = {
    EncodingScheme.IO: frozenset({Label.I}),
    EncodingScheme.BIO: frozenset({Label.B}),
    EncodingScheme.BMEWO: frozenset({Label.B, Label.W}),
}

# Labels that stop a span from growing.
_BREAKERS: FrozenSet[Label] = frozenset({Label.B, Label.W, Label.O})

_ALLOWED: Dict[EncodingScheme, Tuple[Label, ...]] = {
    EncodingScheme.IO: (Label.I,),
    EncodingScheme.BIO: (Label.B, Label.I),
    EncodingScheme.BMEWO: (Label.B, Label.M, Label.E, Label.W),
}


def alphabet(scheme: EncodingScheme) -> FrozenSet[Label]:
    return _ALPHABETS[scheme]


def allowed_labels(scheme: EncodingScheme) -> Tuple[Label, ...]:
    """Labels a tagger may emit inside an entity under ``scheme``."""
    return _ALLOWED[scheme]


def span_labels(length: int, scheme: EncodingScheme) -> List[Label]:
    """
    Labels for a span of ``length`` tokens, listed from the token where the
    entity begins to the token where it ends.
    """
    if length < 1:
        raise AnnotationRangeError(f"Span length must be positive, got {length}")

    if scheme is EncodingScheme.IO:
        return [Label.I] * length

    if scheme is EncodingScheme.BIO:
        return [Label.B] + [Label.I] * (length - 1)

    if length == 1:
        return [Label.W]
    return [Label.B] + [Label.M] * (length - 2) + [Label.E]


def write_span(
    labels: List[Label],
    start: int,
    end: int,
    scheme: EncodingScheme,
    direction: Direction = Direction.FW,
) -> None:
    """
    Write the labels of span [start, end] into ``labels`` in place.

    In backward traversal the entity begins at the highest index, so the
    labels are laid out from ``end`` down to ``start``.
    """
    if start < 0 or end >= len(labels) or start > end:
        raise AnnotationRangeError(
            f"Span ({start},{end}) out of range for {len(labels)} tokens"
        )
    values = span_labels(end - start + 1, scheme)
    if direction is Direction.BW:
        values.reverse()
    labels[start : end + 1] = values


def encode(
    spans: Iterable[Span],
    size: int,
    scheme: EncodingScheme,
    direction: Direction = Direction.FW,
) -> List[Label]:
    labels = [Label.O] * size
    for start, end in spans:
        write_span(labels, start, end, scheme, direction)
    return labels


def check_labels(labels: Sequence[Label | str], scheme: EncodingScheme) -> List[Label]:
    """Parse ``labels`` and reject any label outside the scheme's alphabet."""
    parsed = [Label.parse(v) for v in labels]
    allowed = _ALPHABETS[scheme]
    for value in parsed:
        if value not in allowed:
            raise InvalidLabelError(
                f"Label {value.value!r} is not valid for scheme {scheme.value}"
            )
    return parsed


def decode(
    labels: Sequence[Label],
    scheme: EncodingScheme,
    direction: Direction = Direction.FW,
) -> List[Span]:
    """
    Convert a label sequence into inclusive (start, end) token spans.

    - A span opens on a starter label (I for IO, B for BIO, B/W for BMEWO)
    - It grows in the scan direction until a B, W or O label
    - Stray inside labels with no starter are skipped, not rejected

    Spans are returned in scan order: ascending for FW, descending for BW.
    """
    labels = check_labels(labels, scheme)
    starters = _STARTERS[scheme]
    size = len(labels)
    spans: List[Span] = []

    if direction is Direction.FW:
        i = 0
        while i < size:
            if labels[i] not in starters:
                i += 1
                continue
            end = i
            if labels[i] is not Label.W:
                while end + 1 < size and labels[end + 1] not in _BREAKERS:
                    end += 1
            spans.append((i, end))
            i = end + 1
    else:
        i = size - 1
        while i >= 0:
            if labels[i] not in starters:
                i -= 1
                continue
            start = i
            if labels[i] is not Label.W:
                while start - 1 >= 0 and labels[start - 1] not in _BREAKERS:
                    start -= 1
            spans.append((start, i))
            i = start - 1

    return spans


def decode_strings(
    values: Iterable[str],
    scheme: EncodingScheme,
    direction: Direction = Direction.FW,
) -> List[Span]:
    return decode(list(values), scheme, direction)


def forbidden_pattern(
    scheme: EncodingScheme, direction: Direction
) -> Optional["re.Pattern[str]"]:
    """
    Pattern over a comma-joined label string that a tagger must never
    produce. IO has none.
    """
    if scheme is EncodingScheme.IO:
        return None
    inside = Label.I if scheme is EncodingScheme.BIO else Label.M
    if direction is Direction.FW:
        return re.compile(f"{Label.O.value},{inside.value}")
    return re.compile(f"{inside.value},{Label.O.value}")


def has_forbidden_transition(
    labels: Sequence[Label], scheme: EncodingScheme, direction: Direction
) -> bool:
    pattern = forbidden_pattern(scheme, direction)
    if pattern is None:
        return False
    joined = ",".join(Label.parse(v).value for v in labels)
    return pattern.search(joined) is not None


def reverse_span(start: int, end: int, size: int) -> Span:
    """Mirror span [start, end] around the middle of a ``size`` token sentence."""
    new_start = (size - 1) - end
    return new_start, new_start + (end - start)
