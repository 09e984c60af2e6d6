# tests/test_parser.py

import shutil

import pytest
import spacy

from biotag.dictionary import DictionaryMatcher, DictionaryMatchers
from biotag.errors import ParserError
from biotag.models import Corpus
from biotag.parser import (
    BaseParser,
    GDepParser,
    ParsedToken,
    ProcessBridge,
    SpacyParser,
    build_sentence,
    parse_gdep_line,
    preprocess,
    token_features,
)


class WhitespaceParser(BaseParser):
    def parse(self, text):
        return [
            ParsedToken(text=w, lemma=w.lower(), pos="NN", chunk="O", head=-1, dep="ROOT")
            for w in text.split()
        ]


def test_preprocess_splits_separators():
    assert preprocess("IL-2/IL-4 cells.") == "IL - 2 / IL - 4 cells ."
    assert preprocess("  a   b ") == "a b"


def test_parse_gdep_line():
    pt = parse_gdep_line("1\tIL2\til2\tB-NP\tNN\tO\t2\tSUB\n")
    assert pt == ParsedToken(text="IL2", lemma="il2", pos="NN", chunk="B-NP", head=1, dep="SUB")
    assert parse_gdep_line("3\t''\t''\tO\t''\tO\t0\tP").text == '"'
    assert parse_gdep_line("3\t``\t``\tO\t``\tO\t0\tP").head == -1


def test_parse_gdep_line_rejects_short_lines():
    with pytest.raises(ParserError):
        parse_gdep_line("1\tIL2\til2")
    with pytest.raises(ParserError):
        parse_gdep_line("1\tIL2\til2\tB-NP\tNN\tO\tx\tSUB")


def test_dependency_features():
    parsed = [
        ParsedToken("IL2", "il2", "NN", "B-NP", 1, "SUB"),
        ParsedToken("activates", "activate", "VBZ", "B-VP", -1, "ROOT"),
        ParsedToken("human", "human", "JJ", "B-NP", 3, "NMOD"),
        ParsedToken("BRCA1", "brca1", "NN", "I-NP", 1, "OBJ"),
    ]
    assert token_features(parsed, 0) == ["LEMMA=il2", "POS=NN", "CHUNK=B-NP", "SUB=activate"]
    assert token_features(parsed, 2)[-1] == "NMOD_OF=brca1"
    assert token_features(parsed, 3) == [
        "LEMMA=brca1",
        "POS=NN",
        "CHUNK=I-NP",
        "OBJ=activate",
        "NMOD_BY=human",
    ]
    assert token_features(parsed, 1) == ["LEMMA=activate", "POS=VBZ", "CHUNK=B-VP"]


def test_build_sentence():
    corpus = Corpus()
    matchers = DictionaryMatchers({"prge": DictionaryMatcher(["BRCA1"])})
    s = build_sentence(corpus, "IL-2 binds BRCA1.", WhitespaceParser(), "S9", matchers)

    assert corpus[0] is s
    assert s.id == "S9"
    assert [t.text for t in s.tokens] == ["IL", "-", "2", "binds", "BRCA1", "."]
    assert (s.tokens[3].start, s.tokens[3].end) == (4, 8)
    assert s.tokens[4].features == ["LEMMA=brca1", "POS=NN", "CHUNK=O", "LEXICON=PRGE"]


def test_spacy_parser_with_blank_pipeline():
    parser = SpacyParser(nlp=spacy.blank("en"))
    parsed = parser.parse("IL2 binds BRCA1")
    assert [p.text for p in parsed] == ["IL2", "binds", "BRCA1"]
    assert all(p.chunk == "O" for p in parsed)
    assert all(p.head == -1 for p in parsed)


@pytest.mark.skipif(shutil.which("cat") is None, reason="needs cat")
def test_process_bridge_relays_lines():
    bridge = ProcessBridge(["cat"])
    bridge.launch()
    try:
        bridge.send("hello\n")
        assert bridge.read_line(timeout=10) == "hello\n"
    finally:
        bridge.terminate()

    assert not bridge.running
    with pytest.raises(ParserError):
        bridge.launch()
    with pytest.raises(ParserError):
        bridge.send("again\n")


def test_process_bridge_reports_missing_command():
    bridge = ProcessBridge(["/nonexistent/parser-binary"])
    with pytest.raises(ParserError):
        bridge.launch()


@pytest.mark.skipif(shutil.which("sh") is None, reason="needs sh")
def test_gdep_parser_reads_until_blank_line():
    script = r"while read line; do printf '1\tIL2\til2\tB-NP\tNN\tO\t0\tROOT\n\n'; done"
    with GDepParser(command=["sh", "-c", script], timeout=10) as parser:
        first = parser.parse("IL2")
        second = parser.parse("IL2")
    assert [p.text for p in first] == ["IL2"]
    assert second == first
    assert first[0].head == -1
