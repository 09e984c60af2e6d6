# biotag/parser.py

from __future__ import annotations

import logging
import queue
import subprocess
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import regex as re
import spacy

from biotag.dictionary import DictionaryMatchers
from biotag.errors import ParserError
from biotag.models import Corpus, Sentence, Token

logger = logging.getLogger(__name__)

DEFAULT_GDEP_COMMAND = ("resources/tools/gdep/gdep_gimli",)
DEFAULT_SPACY_MODEL = "en_core_web_sm"

_SPLIT_CHARS_RE = re.compile(r"([/\-.])")
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ParsedToken:
    text: str
    lemma: str
    pos: str
    chunk: str
    head: int  # index of the governing token, -1 for the root
    dep: str


def preprocess(text: str) -> str:
    """Split slashes, hyphens and dots off their neighbours before parsing."""
    text = _SPLIT_CHARS_RE.sub(r" \1 ", text)
    return _WS_RE.sub(" ", text).strip()


def parse_gdep_line(line: str) -> ParsedToken:
    """
    One GDep output line:
    ``index \\t text \\t lemma \\t chunk \\t pos \\t ner \\t head \\t dep``.
    """
    parts = line.rstrip("\n").split("\t")
    if len(parts) < 8:
        raise ParserError(f"GDep line has {len(parts)} fields, expected 8: {line!r}")
    text = parts[1].replace("''", '"').replace("``", '"')
    try:
        head = int(parts[6]) - 1
    except ValueError:
        raise ParserError(f"Bad dependency head in GDep line: {line!r}") from None
    return ParsedToken(
        text=text,
        lemma=parts[2],
        chunk=parts[3],
        pos=parts[4],
        head=head,
        dep=parts[7],
    )


def token_features(parsed: Sequence[ParsedToken], index: int) -> List[str]:
    """Linguistic features of token ``index``, in record order."""
    pt = parsed[index]
    features = [f"LEMMA={pt.lemma}", f"POS={pt.pos}", f"CHUNK={pt.chunk}"]

    if 0 <= pt.head < len(parsed):
        governor = parsed[pt.head].lemma
        if pt.dep == "OBJ":
            features.append(f"OBJ={governor}")
        elif pt.dep == "SUB":
            features.append(f"SUB={governor}")
        elif pt.dep == "NMOD":
            features.append(f"NMOD_OF={governor}")

    for other in parsed:
        if other.head == index and other.dep == "NMOD":
            f = f"NMOD_BY={other.lemma}"
            if f not in features:
                features.append(f)
    return features


class BaseParser:
    def launch(self) -> None:
        pass

    def terminate(self) -> None:
        pass

    def parse(self, text: str) -> List[ParsedToken]:
        raise NotImplementedError

    def __enter__(self) -> "BaseParser":
        self.launch()
        return self

    def __exit__(self, *exc) -> None:
        self.terminate()


# ---------------------------------------------------------------------
# External process bridge
# ---------------------------------------------------------------------
class StreamRelay(threading.Thread):
    """Copies lines from ``source`` to ``sink`` until the source closes."""

    def __init__(self, source, sink, name: str):
        super().__init__(name=name, daemon=True)
        self.source = source
        self.sink = sink

    def run(self) -> None:
        try:
            if isinstance(self.source, queue.Queue):
                self._pump_queue()
            else:
                self._pump_stream()
        except (OSError, ValueError):
            # The process was killed while the pipe was in use.
            logger.debug("Relay %s stopped", self.name)

    def _pump_queue(self) -> None:
        while True:
            item = self.source.get()
            if item is None:
                return
            self.sink.write(item)
            self.sink.flush()

    def _pump_stream(self) -> None:
        for line in iter(self.source.readline, ""):
            if isinstance(self.sink, queue.Queue):
                self.sink.put(line)
            elif callable(self.sink):
                self.sink(line)
            else:
                self.sink.write(line)
                self.sink.flush()
        if isinstance(self.sink, queue.Queue):
            self.sink.put(None)


def _log_stderr(line: str) -> None:
    line = line.rstrip()
    if line:
        logger.debug("parser stderr: %s", line)


class ProcessBridge:
    """
    Runs a command and relays its stdin, stdout and stderr through three
    threads. Once terminated the bridge cannot be launched again.
    """

    def __init__(self, command: Sequence[str]):
        self.command = list(command)
        self._process: Optional[subprocess.Popen] = None
        self._to_process: "queue.Queue[Optional[str]]" = queue.Queue()
        self._from_process: "queue.Queue[Optional[str]]" = queue.Queue()
        self._relays: List[StreamRelay] = []
        self._terminated = False

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def launch(self) -> None:
        if self._terminated:
            raise ParserError("Process bridge was terminated and cannot be relaunched")
        if self._process is not None:
            return
        try:
            self._process = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            raise ParserError(f"Could not start {self.command[0]!r}: {exc}") from exc

        proc = self._process
        self._relays = [
            StreamRelay(self._to_process, proc.stdin, "relay-stdin"),
            StreamRelay(proc.stdout, self._from_process, "relay-stdout"),
            StreamRelay(proc.stderr, _log_stderr, "relay-stderr"),
        ]
        for relay in self._relays:
            relay.start()
        logger.info("Launched %s (pid=%s)", self.command[0], proc.pid)

    def send(self, text: str) -> None:
        if not self.running:
            raise ParserError("Process bridge is not running")
        self._to_process.put(text)

    def read_line(self, timeout: Optional[float] = None) -> str:
        try:
            line = self._from_process.get(timeout=timeout)
        except queue.Empty:
            raise ParserError(f"No output from {self.command[0]!r} within {timeout}s") from None
        if line is None:
            raise ParserError(f"{self.command[0]!r} closed its output")
        return line

    def terminate(self) -> None:
        if self._process is None or self._terminated:
            self._terminated = True
            return
        self._terminated = True
        self._process.kill()
        self._to_process.put(None)
        self._process.wait()
        logger.info("Terminated %s (pid=%s)", self.command[0], self._process.pid)


class GDepParser(BaseParser):
    """Dependency parser running as an external process, one sentence per line."""

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_GDEP_COMMAND,
        tokenize: bool = True,
        timeout: Optional[float] = 60.0,
    ):
        cmd = list(command)
        if not tokenize:
            cmd.append("-nt")
        self.bridge = ProcessBridge(cmd)
        self.timeout = timeout

    def launch(self) -> None:
        self.bridge.launch()

    def terminate(self) -> None:
        self.bridge.terminate()

    def parse(self, text: str) -> List[ParsedToken]:
        self.bridge.send(text.strip() + "\n")
        tokens: List[ParsedToken] = []
        while True:
            line = self.bridge.read_line(self.timeout)
            if not line.strip():
                break
            tokens.append(parse_gdep_line(line))
        return tokens


# ---------------------------------------------------------------------
# spaCy parser
# ---------------------------------------------------------------------
_NLP_CACHE: Dict[str, "spacy.language.Language"] = {}

# spaCy dependency labels -> GDep relation names used by the features.
DEP_MAP = {
    "dobj": "OBJ",
    "obj": "OBJ",
    "pobj": "OBJ",
    "nsubj": "SUB",
    "nsubjpass": "SUB",
    "amod": "NMOD",
    "compound": "NMOD",
    "nmod": "NMOD",
    "nummod": "NMOD",
    "det": "NMOD",
}


def _get_nlp(model: str) -> "spacy.language.Language":
    if model not in _NLP_CACHE:
        _NLP_CACHE[model] = spacy.load(model, disable=["ner"])
    return _NLP_CACHE[model]


class SpacyParser(BaseParser):
    def __init__(self, model: str = DEFAULT_SPACY_MODEL, nlp: "spacy.language.Language | None" = None):
        self.model = model
        self._nlp = nlp

    @property
    def nlp(self) -> "spacy.language.Language":
        if self._nlp is None:
            self._nlp = _get_nlp(self.model)
        return self._nlp

    def launch(self) -> None:
        _ = self.nlp

    def parse(self, text: str) -> List[ParsedToken]:
        doc = self.nlp(text)

        chunks = ["O"] * len(doc)
        if doc.has_annotation("DEP"):
            for np in doc.noun_chunks:
                chunks[np.start] = "B-NP"
                for i in range(np.start + 1, np.end):
                    chunks[i] = "I-NP"

        out: List[ParsedToken] = []
        for tok in doc:
            if tok.is_space:
                continue
            head = -1 if tok.head.i == tok.i else tok.head.i
            out.append(
                ParsedToken(
                    text=tok.text,
                    lemma=tok.lemma_ or tok.text,
                    pos=tok.tag_ or tok.pos_ or "X",
                    chunk=chunks[tok.i],
                    head=head,
                    dep=DEP_MAP.get(tok.dep_, tok.dep_.upper() or "ROOT"),
                )
            )
        return out


def build_sentence(
    corpus: Corpus,
    text: str,
    parser: BaseParser,
    sentence_id: str = "",
    matchers: Optional[DictionaryMatchers] = None,
) -> Sentence:
    """Parse ``text`` and append it to ``corpus`` as a featured sentence."""
    parsed = parser.parse(preprocess(text))
    sentence = corpus.new_sentence(sentence_id)

    start = 0
    for k, pt in enumerate(parsed):
        token = Token.at(pt.text, start, k)
        for f in token_features(parsed, k):
            token.add_feature(f)
        sentence.add_token(token)
        start = token.end + 1

    if matchers is not None:
        matchers.match(sentence)
    return sentence


__all__ = [
    "ParsedToken",
    "preprocess",
    "parse_gdep_line",
    "token_features",
    "BaseParser",
    "StreamRelay",
    "ProcessBridge",
    "GDepParser",
    "SpacyParser",
    "build_sentence",
]
