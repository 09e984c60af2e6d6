# api/schemas.py

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class ModelOutputSchema(BaseModel):
    labels: List[str]
    score: float
    log_z: float = 0.0
    direction: str = "FW"  # or "BW": labels listed in the model's reading order


class SentenceSchema(BaseModel):
    id: str = ""
    tokens: List[str]
    labels: Optional[List[str]] = None
    outputs: List[ModelOutputSchema] = Field(default_factory=list)


class CorrectRequest(BaseModel):
    scheme: str = "BIO"
    entity: str = "protein"
    parentheses: str = "correct"  # or "remove", "off"
    abbreviations: bool = True
    sentences: List[SentenceSchema]


class AnnotationSchema(BaseModel):
    start: int
    end: int
    char_start: int
    char_end: int
    text: str
    score: float


class SentenceResult(BaseModel):
    id: str
    labels: List[str]
    annotations: List[AnnotationSchema]
    winner: Optional[int] = None


class CorrectResponse(BaseModel):
    sentences: List[SentenceResult]
    parentheses: Optional[Dict[str, int]] = None
    abbreviations: int = 0
