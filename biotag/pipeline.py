# biotag/pipeline.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from biotag import abbreviation, parentheses
from biotag.abbreviation import AbbreviationExtractor
from biotag.codec import EncodingScheme
from biotag.config import LexiconSpec, ParserSpec, PipelineConfig, load_config
from biotag.dictionary import DictionaryMatcher, DictionaryMatchers
from biotag.errors import ConfigError
from biotag.models import Corpus, EntityType
from biotag.parentheses import CorrectionReport
from biotag.parser import BaseParser, GDepParser, SpacyParser, build_sentence
from biotag.tagger import Annotator, BaseTagger, LexiconTaggerConfig, RuleBasedLexiconTagger

logger = logging.getLogger(__name__)


@dataclass
class PipelineReport:
    sentences: int = 0
    annotations: int = 0
    winners: List[int] = field(default_factory=list)
    parentheses: Optional[CorrectionReport] = None
    abbreviations: int = 0


def build_taggers(config: PipelineConfig) -> List[BaseTagger]:
    taggers: List[BaseTagger] = []
    for spec in config.models:
        if spec.kind != "lexicon":
            raise ConfigError(f"Model {spec.name!r}: unsupported kind {spec.kind!r}")
        tagger = RuleBasedLexiconTagger(
            LexiconTaggerConfig(
                feature_prefix=spec.features or "LEXICON=PRGE",
                confidence=spec.confidence,
            ),
            direction=spec.direction,
        )
        tagger.name = spec.name
        taggers.append(tagger)
    return taggers


def build_matchers(lexicons: dict[str, LexiconSpec]) -> DictionaryMatchers:
    matchers = DictionaryMatchers()
    for name, spec in lexicons.items():
        matchers.add(
            name,
            DictionaryMatcher.from_file(
                spec.path,
                kind=spec.kind,
                stopwords_path=spec.stopwords,
                with_variations=spec.variations,
            ),
        )
    return matchers


def build_parser(spec: ParserSpec) -> BaseParser:
    if spec.kind == "gdep":
        return GDepParser(spec.command) if spec.command else GDepParser()
    return SpacyParser(spec.model)


def build_corpus(
    texts: Iterable[str],
    parser: BaseParser,
    matchers: Optional[DictionaryMatchers] = None,
    scheme: EncodingScheme = EncodingScheme.BIO,
    entity: EntityType = EntityType.protein,
    ids: Optional[Sequence[str]] = None,
) -> Corpus:
    """Parse raw sentences into a featured corpus."""
    corpus = Corpus(scheme=scheme, entity=entity)
    for i, text in enumerate(texts):
        sentence_id = ids[i] if ids is not None else f"S{i + 1}"
        build_sentence(corpus, text, parser, sentence_id, matchers)
    logger.info("Built corpus with %d sentences", len(corpus))
    return corpus


class Pipeline:
    """Annotate a corpus with one or more models, then correct boundaries."""

    def __init__(
        self,
        config: PipelineConfig,
        taggers: Optional[Sequence[BaseTagger]] = None,
        extractor: Optional[AbbreviationExtractor] = None,
    ):
        self.config = config
        self.taggers = list(taggers) if taggers is not None else build_taggers(config)
        self.extractor = extractor

    @classmethod
    def from_yaml(cls, path: str = "configs/pipeline.yaml") -> "Pipeline":
        return cls(load_config(path))

    def correct(self, corpus: Corpus, report: PipelineReport) -> None:
        mode = self.config.parentheses
        if mode == "correct":
            report.parentheses = parentheses.process_correcting(corpus)
        elif mode == "remove":
            report.parentheses = parentheses.process_removing(corpus)

        if self.config.abbreviations:
            report.abbreviations = abbreviation.process(corpus, self.extractor)

    def run(self, corpus: Corpus) -> PipelineReport:
        if not self.taggers:
            raise ConfigError("No models configured")

        report = PipelineReport(sentences=len(corpus))
        annotator = Annotator(corpus, workers=self.config.workers)
        if len(self.taggers) == 1:
            annotator.annotate(self.taggers[0])
        else:
            report.winners = annotator.annotate_ensemble(self.taggers)

        self.correct(corpus, report)
        report.annotations = corpus.annotation_count()
        logger.info(
            "Pipeline done: sentences=%d annotations=%d abbreviations=%d",
            report.sentences,
            report.annotations,
            report.abbreviations,
        )
        return report


__all__ = [
    "PipelineReport",
    "Pipeline",
    "build_taggers",
    "build_matchers",
    "build_parser",
    "build_corpus",
]
