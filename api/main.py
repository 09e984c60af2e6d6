import os
import logging
import logging.config
from typing import Optional

import yaml
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from api.schemas import (
    AnnotationSchema,
    CorrectRequest,
    CorrectResponse,
    SentenceResult,
    SentenceSchema,
)
from biotag import abbreviation, parentheses
from biotag.codec import Direction, EncodingScheme
from biotag.ensemble import ModelOutput, combine
from biotag.errors import BiotagError
from biotag.models import Corpus, EntityType, Sentence


def setup_logging():
    cfg_path = os.path.join("configs", "logging.yaml")
    if os.path.exists(cfg_path):
        try:
            with open(cfg_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
            os.makedirs("logs", exist_ok=True)
            logging.config.dictConfig(config)
        except (OSError, ValueError, yaml.YAMLError) as e:
            print(f"[logging] Failed to load logging.yaml: {e}")
            logging.basicConfig(level=logging.INFO)
    else:
        logging.basicConfig(level=logging.INFO)


setup_logging()
logger = logging.getLogger("api")

app = FastAPI(
    title="biotag",
    version="0.1.0",
    description="Biomedical entity tag decoding, model combination and boundary correction.",
)

origins = [
    "http://localhost:8501",
    "http://127.0.0.1:8501",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _fill_sentence(sentence: Sentence, req: SentenceSchema) -> Optional[int]:
    """Apply the request's labels or model outputs; returns the winning model index."""
    for text in req.tokens:
        sentence.append_text(text)

    outputs = [
        ModelOutput(
            labels=tuple(o.labels),
            score=o.score,
            log_z=o.log_z,
            direction=Direction.parse(o.direction),
        )
        for o in req.outputs
    ]
    if len(outputs) >= 2:
        return combine(sentence, outputs)

    if len(outputs) == 1:
        sentence.set_labels(outputs[0].forward_labels())
        sentence.add_annotations_from_labels(outputs[0].confidence)
        return 0

    if req.labels is not None:
        sentence.set_labels(req.labels)
        sentence.add_annotations_from_labels(1.0)
    return None


def correct_corpus(req: CorrectRequest) -> CorrectResponse:
    corpus = Corpus(
        scheme=EncodingScheme.parse(req.scheme),
        entity=EntityType.parse(req.entity),
    )
    winners = [_fill_sentence(corpus.new_sentence(s.id), s) for s in req.sentences]

    response = CorrectResponse(sentences=[])
    mode = req.parentheses.strip().lower()
    if mode == "correct":
        report = parentheses.process_correcting(corpus)
    elif mode == "remove":
        report = parentheses.process_removing(corpus)
    elif mode == "off":
        report = None
    else:
        raise ValueError(f"Unknown parentheses mode: {req.parentheses!r}")
    if report is not None:
        response.parentheses = {
            "kept": report.kept,
            "corrected": report.corrected,
            "removed": report.removed,
        }

    if req.abbreviations:
        response.abbreviations = abbreviation.process(corpus)

    for sentence, winner in zip(corpus, winners):
        response.sentences.append(
            SentenceResult(
                id=sentence.id,
                labels=[label.value for label in sentence.labels],
                annotations=[
                    AnnotationSchema(
                        start=a.start,
                        end=a.end,
                        char_start=a.char_start,
                        char_end=a.char_end,
                        text=a.text,
                        score=a.score,
                    )
                    for a in sentence.sorted_annotations()
                ],
                winner=winner,
            )
        )
    return response


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/correct", response_model=CorrectResponse)
def correct(req: CorrectRequest) -> CorrectResponse:
    logger.info("Received /correct request with %d sentences", len(req.sentences))
    try:
        response = correct_corpus(req)
    except (BiotagError, ValueError) as exc:
        logger.error("Rejected /correct request: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return response
