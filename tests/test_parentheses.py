# tests/test_parentheses.py

from biotag import parentheses
from biotag.codec import Label
from biotag.models import Annotation, Corpus


def make_sentence(corpus, text, sentence_id="S1"):
    s = corpus.new_sentence(sentence_id)
    for word in text.split():
        s.append_text(word)
    return s


def test_bracket_detection():
    corpus = Corpus()
    s = make_sentence(corpus, "( p53 ) [x] y")
    assert parentheses.has_open(s.tokens[0])
    assert parentheses.has_close(s.tokens[2])
    assert parentheses.has_open(s.tokens[3]) and parentheses.has_close(s.tokens[3])
    assert not parentheses.has_bracket(s.tokens[4])
    assert parentheses.is_balanced(Annotation(s, 3, 3))
    assert not parentheses.is_balanced(Annotation(s, 0, 1))


def test_open_bracket_is_closed_by_extending_right():
    corpus = Corpus()
    s = make_sentence(corpus, "( BRCA1 ) binds")
    s.add_annotation(Annotation(s, 0, 1, 0.8))

    report = parentheses.process_correcting(corpus)

    assert report.corrected == 1
    assert [a.span for a in s.annotations] == [(0, 2)]
    assert s.annotations[0].text == "( BRCA1 )"
    assert s.annotations[0].score == 0.8
    assert s.labels == [Label.B, Label.I, Label.I, Label.O]


def test_extend_left_is_tried_first():
    corpus = Corpus()
    s = make_sentence(corpus, "the ( IL2 ) chain )")
    a = Annotation(s, 2, 3)
    assert parentheses.extend_left(a).span == (1, 3)
    assert parentheses.correct(a).span == (1, 3)


def test_shrinking_drops_the_stray_bracket():
    corpus = Corpus()
    s = make_sentence(corpus, "the ( p53 protein")
    a = Annotation(s, 1, 2)
    assert parentheses.extend_left(a) is None
    assert parentheses.extend_right(a) is None
    assert parentheses.shrink_left(a).span == (2, 2)

    s.add_annotation(a)
    parentheses.process_correcting(corpus)
    assert [a.text for a in s.annotations] == ["p53"]


def test_shrink_right():
    corpus = Corpus()
    s = make_sentence(corpus, "p53 protein )")
    a = Annotation(s, 0, 2)
    assert parentheses.shrink_right(a).span == (0, 1)


def test_unbalanceable_annotation_is_removed():
    corpus = Corpus()
    s = make_sentence(corpus, "a ( b")
    s.add_annotation(Annotation(s, 1, 1))
    report = parentheses.process_correcting(corpus)
    assert report.removed == 1
    assert s.annotations == []
    assert s.labels == [Label.O] * 3


def test_correcting_converges_to_balanced_annotations():
    corpus = Corpus()
    s1 = make_sentence(corpus, "( BRCA1 ) binds ( IL2", "S1")
    s2 = make_sentence(corpus, "the ( p53 protein and TNF", "S2")
    s1.add_annotation(Annotation(s1, 0, 1))
    s1.add_annotation(Annotation(s1, 4, 5))
    s2.add_annotation(Annotation(s2, 1, 2))
    s2.add_annotation(Annotation(s2, 5, 5))

    report = parentheses.process_correcting(corpus)

    assert report.total() == 4
    assert report.kept == 1
    for s in corpus:
        assert all(parentheses.is_balanced(a) for a in s.annotations)

    again = parentheses.process_correcting(corpus)
    assert again.corrected == 0 and again.removed == 0


def test_removing_drops_only_unbalanced():
    corpus = Corpus()
    s = make_sentence(corpus, "( BRCA1 ) binds IL2")
    s.add_annotation(Annotation(s, 0, 1))
    s.add_annotation(Annotation(s, 4, 4))

    report = parentheses.process_removing(corpus)

    assert (report.kept, report.removed) == (1, 1)
    assert [a.span for a in s.annotations] == [(4, 4)]
    assert s.labels[:2] == [Label.O, Label.O]
