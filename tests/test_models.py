# tests/test_models.py

import pytest

from biotag import codec
from biotag.codec import Direction, EncodingScheme, Label
from biotag.errors import AnnotationRangeError, TaggingError
from biotag.models import Annotation, Corpus, EntityType


def make_sentence(text, scheme=EncodingScheme.BIO, sentence_id="S1"):
    corpus = Corpus(scheme=scheme)
    s = corpus.new_sentence(sentence_id)
    for word in text.split():
        s.append_text(word)
    return s


def test_token_offsets_skip_whitespace():
    s = make_sentence("IL2 binds BRCA1")
    assert [(t.start, t.end) for t in s.tokens] == [(0, 2), (3, 7), (8, 12)]
    assert [t.index for t in s.tokens] == [0, 1, 2]
    assert s.text == "IL2 binds BRCA1"


def test_add_feature_ignores_duplicates():
    s = make_sentence("IL2")
    t = s.tokens[0]
    t.add_feature("POS=NN")
    t.add_feature("POS=NN")
    t.add_feature("LEMMA=il2")
    assert t.features_to_string() == "POS=NN\tLEMMA=il2"


def test_add_and_remove_annotation_keep_labels_in_step():
    s = make_sentence("the IL2 receptor binds")
    a = Annotation(s, 1, 2, 0.8)
    s.add_annotation(a)
    assert s.labels == [Label.O, Label.B, Label.I, Label.O]
    assert a.text == "IL2 receptor"
    assert (a.char_start, a.char_end) == (3, 13)

    s.remove_annotation(a)
    assert s.labels == [Label.O] * 4
    assert s.annotations == []


def test_add_annotation_bmewo_single_token():
    s = make_sentence("IL2 binds", scheme=EncodingScheme.BMEWO)
    s.add_annotation(Annotation(s, 0, 0))
    assert s.labels == [Label.W, Label.O]


def test_add_annotation_out_of_range():
    s = make_sentence("IL2 binds")
    with pytest.raises(AnnotationRangeError):
        s.add_annotation(Annotation(s, 1, 2))
    assert s.annotations == []


def test_annotation_requires_ordered_range():
    s = make_sentence("IL2 binds BRCA1")
    with pytest.raises(AnnotationRangeError):
        Annotation(s, 2, 1)


def test_annotation_equality_ignores_score():
    s = make_sentence("IL2 binds BRCA1")
    other = make_sentence("IL2 binds BRCA1")
    assert Annotation(s, 0, 1, 0.2) == Annotation(s, 0, 1, 0.9)
    assert hash(Annotation(s, 0, 1, 0.2)) == hash(Annotation(s, 0, 1, 0.9))
    assert Annotation(s, 0, 1) != Annotation(other, 0, 1)
    assert Annotation(s, 0, 1) != Annotation(s, 0, 2)


def test_nesting_is_symmetric():
    s = make_sentence("a b c d e")
    outer = Annotation(s, 1, 3)
    inner = Annotation(s, 2, 2)
    crossing = Annotation(s, 3, 4)
    assert outer.overlaps_by_nesting(inner)
    assert inner.overlaps_by_nesting(outer)
    assert not outer.overlaps_by_nesting(crossing)
    assert outer.intersects(crossing)


def test_find_exact_and_nesting():
    s = make_sentence("a b c d e")
    existing = Annotation(s, 1, 3, 0.5)
    s.add_annotation(existing)

    assert s.find_exact(Annotation(s, 1, 3)) is existing
    assert s.find_exact(Annotation(s, 1, 2)) is None
    assert s.find_nesting(Annotation(s, 2, 2)) is existing
    assert s.find_nesting(Annotation(s, 0, 4)) is existing
    assert s.find_nesting(Annotation(s, 4, 4)) is None
    assert s.find_exact(None) is None
    assert s.find_nesting(None) is None


def test_clean_annotations():
    s = make_sentence("a b c")
    s.add_annotation(Annotation(s, 0, 1))
    s.clean_annotations()
    assert s.annotations == []
    assert s.labels == [Label.O] * 3


def test_set_labels_length_mismatch():
    s = make_sentence("a b c")
    with pytest.raises(TaggingError):
        s.set_labels([Label.O, Label.O])


def test_add_annotations_from_labels():
    s = make_sentence("a b c d")
    s.set_labels(["B", "I", "O", "B"])
    added = s.add_annotations_from_labels(0.7)
    assert [a.span for a in added] == [(0, 1), (3, 3)]
    assert all(a.score == 0.7 for a in added)


def test_reverse_is_an_involution():
    s = make_sentence("the IL2 receptor binds BRCA1")
    s.add_annotation(Annotation(s, 1, 2, 0.5))
    s.add_annotation(Annotation(s, 4, 4, 0.9))
    texts = [t.text for t in s.tokens]
    labels = s.labels

    s.reverse()
    assert [t.text for t in s.tokens] == list(reversed(texts))
    assert [t.index for t in s.tokens] == [0, 1, 2, 3, 4]
    assert s.tokens[0].text == "BRCA1"
    assert sorted(a.span for a in s.annotations) == [(0, 0), (2, 3)]
    assert sorted(a.text for a in s.annotations) == ["BRCA1", "receptor IL2"]

    s.reverse()
    assert [t.text for t in s.tokens] == texts
    assert s.labels == labels
    assert sorted((a.span, a.score) for a in s.annotations) == [((1, 2), 0.5), ((4, 4), 0.9)]


def test_reversed_labels_decode_in_corpus_direction():
    s = make_sentence("the IL2 receptor binds BRCA1")
    s.add_annotation(Annotation(s, 1, 2))
    corpus = s.corpus

    corpus.reverse()
    assert corpus.direction is Direction.BW
    decoded = codec.decode(s.labels, corpus.scheme, corpus.direction)
    assert decoded == [a.span for a in s.annotations]
    assert corpus.forbidden_pattern().pattern == "I,O"

    assert corpus.ensure_direction(Direction.FW) is True
    assert corpus.ensure_direction(Direction.FW) is False


def test_record_lines():
    s = make_sentence("IL2 binds")
    s.tokens[0].features.extend(["LEMMA=il2", "POS=NN", "CHUNK=B-NP"])
    s.add_annotation(Annotation(s, 0, 0))
    assert s.to_record_lines()[0] == "IL2\tLEMMA=il2\tPOS=NN\tCHUNK=B-NP\tB"
    assert s.to_record_lines()[1] == "binds\tO"


def test_corpus_counts_and_entity():
    corpus = Corpus(entity=EntityType.parse("DNA"))
    s = corpus.new_sentence("S1")
    for w in "a b".split():
        s.append_text(w)
    s.add_annotation(Annotation(s, 0, 0))
    assert corpus.entity is EntityType.DNA
    assert corpus.annotation_count() == 1
    assert len(corpus) == 1
    assert corpus[0] is s
    corpus.clean_annotations()
    assert corpus.annotation_count() == 0
    assert corpus.allowed_labels() == (Label.B, Label.I)
