# biotag/config.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

import yaml

from biotag.codec import Direction, EncodingScheme
from biotag.errors import ConfigError
from biotag.models import EntityType

PARENTHESES_MODES = ("correct", "remove", "off")
PARSER_KINDS = ("spacy", "gdep")


@dataclass
class ModelSpec:
    name: str
    kind: str = "lexicon"
    direction: Direction = Direction.FW
    path: str | None = None
    features: str | None = None
    confidence: float = 0.5


@dataclass
class LexiconSpec:
    path: str
    kind: str = "PRGE"
    variations: bool = False
    stopwords: str | None = None


@dataclass
class ParserSpec:
    kind: str = "spacy"
    model: str = "en_core_web_sm"
    command: List[str] = field(default_factory=list)


@dataclass
class PipelineConfig:
    scheme: EncodingScheme = EncodingScheme.BIO
    entity: EntityType = EntityType.protein
    models: List[ModelSpec] = field(default_factory=list)
    parentheses: str = "correct"
    abbreviations: bool = True
    workers: int = 1
    lexicons: Dict[str, LexiconSpec] = field(default_factory=dict)
    parser: ParserSpec = field(default_factory=ParserSpec)

    def directions(self) -> List[Direction]:
        return [m.direction for m in self.models]


def _enum(parse, value: Any, what: str):
    try:
        return parse(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid {what}: {exc}") from None


def _choice(value: Any, choices: tuple, what: str) -> str:
    v = str(value).strip().lower()
    if v not in choices:
        raise ConfigError(f"Invalid {what} {value!r}, expected one of {', '.join(choices)}")
    return v


def config_from_dict(cfg: Dict[str, Any] | None) -> PipelineConfig:
    cfg = cfg or {}

    models: List[ModelSpec] = []
    for i, props in enumerate(cfg.get("models", []) or []):
        props = props or {}
        models.append(
            ModelSpec(
                name=str(props.get("name", f"model{i}")),
                kind=str(props.get("kind", "lexicon")),
                direction=_enum(Direction.parse, props.get("direction", "FW"), "direction"),
                path=props.get("path"),
                features=props.get("features"),
                confidence=float(props.get("confidence", 0.5)),
            )
        )

    lexicons: Dict[str, LexiconSpec] = {}
    for name, props in (cfg.get("lexicons", {}) or {}).items():
        props = props or {}
        if "path" not in props:
            raise ConfigError(f"Lexicon {name!r} has no path")
        lexicons[name] = LexiconSpec(
            path=props["path"],
            kind=str(props.get("kind", "PRGE")),
            variations=bool(props.get("variations", False)),
            stopwords=props.get("stopwords"),
        )

    parser_cfg = cfg.get("parser", {}) or {}
    parser = ParserSpec(
        kind=_choice(parser_cfg.get("kind", "spacy"), PARSER_KINDS, "parser kind"),
        model=str(parser_cfg.get("model", "en_core_web_sm")),
        command=list(parser_cfg.get("command", []) or []),
    )

    workers = int(cfg.get("workers", 1))
    if workers < 1:
        raise ConfigError(f"workers must be at least 1, got {workers}")

    return PipelineConfig(
        scheme=_enum(EncodingScheme.parse, cfg.get("scheme", "BIO"), "encoding scheme"),
        entity=_enum(EntityType.parse, cfg.get("entity", "protein"), "entity type"),
        models=models,
        parentheses=_choice(cfg.get("parentheses", "correct"), PARENTHESES_MODES, "parentheses mode"),
        abbreviations=bool(cfg.get("abbreviations", True)),
        workers=workers,
        lexicons=lexicons,
        parser=parser,
    )


def load_config(path: str) -> PipelineConfig:
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    return config_from_dict(cfg)
