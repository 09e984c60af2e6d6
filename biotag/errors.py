# biotag/errors.py

from __future__ import annotations


class BiotagError(Exception):
    """Base class for every error raised by the tagging pipeline."""


class CorpusFormatError(BiotagError):
    """A persisted corpus record is missing fields or carries a bad label."""

    def __init__(self, message: str, path: str | None = None, line_no: int | None = None):
        self.path = path
        self.line_no = line_no
        where = ""
        if path is not None:
            where = f"{path}"
            if line_no is not None:
                where += f":{line_no}"
            where += ": "
        super().__init__(where + message)


class EnsembleUsageError(BiotagError):
    """Raised when model combination is asked to arbitrate fewer than two models."""


class InvalidLabelError(BiotagError, ValueError):
    """A label string is not part of the active encoding scheme."""


class AnnotationRangeError(BiotagError, ValueError):
    """An annotation does not fit inside its sentence."""


class TaggingError(BiotagError):
    """A tagger returned a label sequence that does not fit the sentence."""


class ParserError(BiotagError):
    pass


class ConfigError(BiotagError):
    pass
