# biotag/corpus_io.py

from __future__ import annotations

import gzip
import logging
from pathlib import Path
from typing import Iterable, List, Sequence, TextIO

from biotag.codec import EncodingScheme, Label, check_labels
from biotag.ensemble import merge_annotations
from biotag.errors import CorpusFormatError, EnsembleUsageError
from biotag.models import Annotation, Corpus, EntityType, Sentence, Token

logger = logging.getLogger(__name__)

# text, lemma, pos, chunk, label
MIN_RECORD_FIELDS = 5


def parse_token_line(
    line: str,
    start: int,
    index: int,
    scheme: EncodingScheme | None = None,
) -> Token:
    """
    One token line of a persisted record:
    ``text \\t lemma \\t pos \\t chunk \\t [feature \\t]* label``.
    Columns are positional and kept as written, duplicates included.
    Raises ValueError on a malformed line, an unknown label, or a label
    outside ``scheme`` when one is given.
    """
    parts = line.rstrip("\n").split("\t")
    if len(parts) < MIN_RECORD_FIELDS:
        raise ValueError(
            f"expected at least {MIN_RECORD_FIELDS} tab-separated fields, got {len(parts)}"
        )
    token = Token.at(parts[0], start, index)
    if scheme is None:
        token.label = Label.parse(parts[-1])
    else:
        token.label = check_labels([parts[-1]], scheme)[0]
    token.features.extend(parts[1:-1])
    return token


def read_corpus(
    lines: Iterable[str],
    scheme: EncodingScheme = EncodingScheme.BIO,
    entity: EntityType = EntityType.protein,
    source: str | None = None,
) -> Corpus:
    """Build a corpus from record lines (id line, token lines, blank line)."""
    corpus = Corpus(scheme=scheme, entity=entity)
    sentence: Sentence | None = None

    def close(s: Sentence | None) -> None:
        if s is not None and len(s):
            s.add_annotations_from_labels(1.0)

    for line_no, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if not line.strip():
            close(sentence)
            sentence = None
            continue

        if sentence is None:
            sentence = corpus.new_sentence(line.strip())
            continue

        start = sentence.tokens[-1].end + 1 if sentence.tokens else 0
        try:
            token = parse_token_line(line, start, len(sentence), scheme)
        except ValueError as exc:
            raise CorpusFormatError(str(exc), source, line_no) from exc
        sentence.add_token(token)

    close(sentence)
    return corpus


def load_corpus(
    path: str | Path,
    scheme: EncodingScheme = EncodingScheme.BIO,
    entity: EntityType = EntityType.protein,
) -> Corpus:
    logger.info("Loading corpus from file: %s", path)
    with gzip.open(path, "rt", encoding="utf-8") as f:
        corpus = read_corpus(f, scheme, entity, source=str(path))
    logger.info(
        "Loaded %d sentences with %d annotations", len(corpus), corpus.annotation_count()
    )
    return corpus


def write_records(corpus: Corpus, out: TextIO) -> None:
    for sentence in corpus:
        out.write(sentence.id + "\n")
        for line in sentence.to_record_lines():
            out.write(line + "\n")
        out.write("\n")


def write_corpus(corpus: Corpus, path: str | Path) -> None:
    """Persist ``corpus`` as a gzip-compressed record file."""
    with gzip.open(path, "wt", encoding="utf-8") as f:
        write_records(corpus, f)
    logger.info("Wrote %d sentences to %s", len(corpus), path)


# ---------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------
def char_offset_lines(corpus: Corpus) -> List[str]:
    """``sentenceId|startChar endChar|entityText`` per annotation."""
    lines = []
    for sentence in corpus:
        for a in sentence.annotations:
            lines.append(f"{sentence.id}|{a.char_start} {a.char_end}|{a.text}")
    return lines


def write_char_offsets(corpus: Corpus, path: str | Path) -> None:
    lines = char_offset_lines(corpus)
    with open(path, "w", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")
    logger.info("Wrote %d annotations to %s", len(lines), path)


def _tag_string(label: Label, entity: EntityType) -> str:
    if label is Label.O:
        return label.value
    return f"{label.value}-{entity.value}"


def token_tag_lines(corpus: Corpus) -> List[str]:
    """
    ``text \\t label[-entity]`` per token with a blank line after each
    sentence; an id line and a blank line precede every change of id.
    """
    lines: List[str] = []
    last_id = None
    for sentence in corpus:
        if sentence.id != last_id:
            lines.extend([sentence.id, ""])
        for t in sentence.tokens:
            lines.append(f"{t.text}\t{_tag_string(t.label, corpus.entity)}")
        lines.append("")
        last_id = sentence.id
    return lines


def merged_token_tag_lines(corpora: Sequence[Corpus]) -> List[str]:
    """
    Token tags for several corpora annotated with different entity types.

    Overlapping annotations are resolved by score, and each kept one is
    written as ``B-<entity>`` then ``I-<entity>`` with its own corpus's entity.
    """
    if len(corpora) < 2:
        logger.error("Merged export needs at least two corpora, got %d", len(corpora))
        raise EnsembleUsageError(
            f"Merged export needs at least two corpora, got {len(corpora)}"
        )
    base = corpora[0]
    for c in corpora[1:]:
        if len(c) != len(base):
            raise EnsembleUsageError(
                f"Corpora differ in size: {len(base)} vs {len(c)} sentences"
            )

    lines: List[str] = []
    last_id = None
    for i, sentence in enumerate(base):
        pooled: List[Annotation] = [a for c in corpora for a in c[i].annotations]
        tags = [Label.O.value] * len(sentence)
        for a in merge_annotations(pooled):
            entity = a.sentence.corpus.entity.value
            for k in range(a.start, a.end + 1):
                first = Label.B if k == a.start else Label.I
                tags[k] = f"{first.value}-{entity}"

        if sentence.id != last_id:
            lines.extend([sentence.id, ""])
        for t, tag in zip(sentence.tokens, tags):
            lines.append(f"{t.text}\t{tag}")
        lines.append("")
        last_id = sentence.id
    return lines


def _write_lines(lines: List[str], path: str | Path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")


def write_token_tags(corpus: Corpus, path: str | Path) -> None:
    _write_lines(token_tag_lines(corpus), path)
    logger.info("Wrote token tags for %d sentences to %s", len(corpus), path)


def write_merged_token_tags(corpora: Sequence[Corpus], path: str | Path) -> None:
    _write_lines(merged_token_tag_lines(corpora), path)
    logger.info("Wrote merged token tags of %d corpora to %s", len(corpora), path)


__all__ = [
    "parse_token_line",
    "read_corpus",
    "load_corpus",
    "write_records",
    "write_corpus",
    "char_offset_lines",
    "write_char_offsets",
    "token_tag_lines",
    "write_token_tags",
    "merged_token_tag_lines",
    "write_merged_token_tags",
]
