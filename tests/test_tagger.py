# tests/test_tagger.py

import pytest

from biotag.codec import Direction, EncodingScheme, Label
from biotag.ensemble import ModelOutput
from biotag.errors import EnsembleUsageError, TaggingError
from biotag.models import Annotation, Corpus
from biotag.tagger import (
    Annotator,
    BaseTagger,
    LexiconTaggerConfig,
    RuleBasedLexiconTagger,
)

B, I, O = Label.B, Label.I, Label.O


def make_corpus(scheme=EncodingScheme.BIO):
    corpus = Corpus(scheme=scheme)
    for sid, text, marked in [
        ("S1", "the IL2 receptor binds BRCA1", {1, 2, 4}),
        ("S2", "no entity here", set()),
    ]:
        s = corpus.new_sentence(sid)
        for k, word in enumerate(text.split()):
            t = s.append_text(word)
            if k in marked:
                t.add_feature("LEXICON=PRGE")
    return corpus


def tagger(confidence, direction=Direction.FW):
    return RuleBasedLexiconTagger(LexiconTaggerConfig(confidence=confidence), direction)


def spans(corpus):
    return [[a.span for a in s.sorted_annotations()] for s in corpus]


def test_lexicon_tagger_marks_feature_runs():
    corpus = make_corpus()
    out = tagger(0.5).tag(corpus[0])
    assert list(out.labels) == [O, B, I, O, B]
    assert out.confidence == pytest.approx(0.5)


def test_annotate_forward():
    corpus = make_corpus()
    Annotator(corpus).annotate(tagger(0.7))
    assert spans(corpus) == [[(1, 2), (4, 4)], []]
    assert corpus[0].annotations[0].score == pytest.approx(0.7)
    assert corpus.direction is Direction.FW


@pytest.mark.parametrize("scheme", list(EncodingScheme))
def test_annotate_backward_restores_order(scheme):
    corpus = make_corpus(scheme)
    Annotator(corpus).annotate(tagger(0.6, Direction.BW))
    assert corpus.direction is Direction.FW
    assert corpus[0].text == "the IL2 receptor binds BRCA1"
    assert spans(corpus) == [[(1, 2), (4, 4)], []]


def test_annotate_ensemble_picks_most_confident():
    corpus = make_corpus()
    winners = Annotator(corpus).annotate_ensemble(
        [tagger(0.6), tagger(0.8, Direction.BW)]
    )
    assert winners == [1, 1]
    assert corpus.direction is Direction.FW
    assert corpus[0].text == "the IL2 receptor binds BRCA1"
    assert spans(corpus) == [[(1, 2), (4, 4)], []]
    assert corpus[0].labels == [O, B, I, O, B]
    assert all(a.score == pytest.approx(0.8) for a in corpus[0].annotations)


def test_annotate_ensemble_with_workers():
    corpus = make_corpus()
    winners = Annotator(corpus, workers=2).annotate_ensemble(
        [tagger(0.9), tagger(0.8, Direction.BW)]
    )
    assert winners == [0, 0]
    assert spans(corpus) == [[(1, 2), (4, 4)], []]


def test_annotate_ensemble_from_backward_corpus():
    corpus = make_corpus()
    corpus.reverse()
    Annotator(corpus).annotate_ensemble([tagger(0.5), tagger(0.4)])
    assert corpus.direction is Direction.FW
    assert spans(corpus) == [[(1, 2), (4, 4)], []]


def test_annotate_ensemble_needs_two_models():
    corpus = make_corpus()
    s = corpus[0]
    s.add_annotation(Annotation(s, 0, 0))
    with pytest.raises(EnsembleUsageError):
        Annotator(corpus).annotate_ensemble([tagger(0.9)])
    assert [a.span for a in s.annotations] == [(0, 0)]


class FailingTagger(BaseTagger):
    def __init__(self, direction=Direction.FW, fail_on="S2"):
        self.direction = direction
        self.fail_on = fail_on

    def tag(self, sentence):
        if sentence.id == self.fail_on:
            raise RuntimeError("model crashed")
        return ModelOutput.from_confidence([O] * len(sentence), 0.9, self.direction)


class ShortTagger(BaseTagger):
    def tag(self, sentence):
        return ModelOutput.from_confidence([O], 0.9)


@pytest.mark.parametrize("direction", list(Direction))
def test_failed_annotate_keeps_corpus(direction):
    corpus = make_corpus()
    s = corpus[0]
    s.add_annotation(Annotation(s, 1, 2, 0.3))
    with pytest.raises(RuntimeError):
        Annotator(corpus).annotate(FailingTagger(direction))
    assert corpus.direction is Direction.FW
    assert corpus[0].text == "the IL2 receptor binds BRCA1"
    assert spans(corpus) == [[(1, 2)], []]
    assert corpus[0].labels == [O, B, I, O, O]


def test_wrong_label_count_keeps_corpus():
    corpus = make_corpus()
    s = corpus[0]
    s.add_annotation(Annotation(s, 4, 4))
    with pytest.raises(TaggingError):
        Annotator(corpus).annotate(ShortTagger())
    assert spans(corpus) == [[(4, 4)], []]


def test_failed_ensemble_keeps_corpus_direction():
    corpus = make_corpus()
    corpus.reverse()
    s = corpus[0]
    s.add_annotation(Annotation(s, 0, 0))
    with pytest.raises(RuntimeError):
        Annotator(corpus).annotate_ensemble([tagger(0.5), FailingTagger()])
    assert corpus.direction is Direction.BW
    assert s.tokens[0].text == "BRCA1"
    assert [a.span for a in s.annotations] == [(0, 0)]
