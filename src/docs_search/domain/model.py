"""Index artifact data model.

The artifact is an ordered array of documents; a document's ``id`` is its
position in that array at build time. Documents are immutable value objects
so a loaded snapshot can be shared by concurrent queries without copying.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from docs_search.errors import ArtifactMalformedError, InvalidDocumentError


logger = logging.getLogger(__name__)


class Anchor(BaseModel):
    """A heading inside a document, addressable as ``path#id``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    text: str
    level: int | None = Field(default=None, ge=1, le=6)

    @field_validator("id")
    @classmethod
    def _valid_fragment(cls, value: str) -> str:
        if not value or "#" in value or any(ch.isspace() for ch in value):
            raise ValueError(f"'{value}' is not a usable URL fragment")
        return value


class Document(BaseModel):
    """One indexed page: plain-text title and body plus its anchors."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = Field(ge=0)
    title: str
    content: str
    path: str
    anchors: tuple[Anchor, ...] = ()

    def to_artifact(self) -> dict[str, Any]:
        """Serialize into the persisted artifact shape."""
        return self.model_dump(mode="json", exclude_none=True)


def coerce_document(entry: Any, index: int) -> Document:
    """Return ``entry`` as a :class:`Document`, validating raw mappings.

    Raises:
        InvalidDocumentError: when the entry is not a mapping or fails validation.
    """
    if isinstance(entry, Document):
        return entry
    if not isinstance(entry, Mapping):
        raise InvalidDocumentError(index, f"expected an object, got {type(entry).__name__}")
    if not isinstance(entry.get("title"), str) or not isinstance(entry.get("content"), str):
        raise InvalidDocumentError(index, "title and content must be strings")
    payload = dict(entry)
    payload.setdefault("id", index)
    payload.setdefault("path", "")
    try:
        return Document.model_validate(payload)
    except ValidationError as exc:
        raise InvalidDocumentError(index, str(exc.errors()[0].get("msg", exc))) from exc


def extract_document_array(payload: Any) -> Sequence[Any]:
    """Return the document array from a parsed artifact.

    Accepts the bare array form and the ``{"documents": [...]}`` envelope.

    Raises:
        ArtifactMalformedError: when no array can be found.
    """
    if isinstance(payload, Mapping):
        payload = payload.get("documents")
    if not isinstance(payload, list):
        raise ArtifactMalformedError(f"Invalid search data format: expected an array, got {type(payload).__name__}")
    return payload


def parse_documents(payload: Any) -> list[Document]:
    """Validate every entry of a parsed artifact, skipping malformed ones."""

    documents: list[Document] = []
    for index, entry in enumerate(extract_document_array(payload)):
        try:
            documents.append(coerce_document(entry, index))
        except InvalidDocumentError as exc:
            logger.warning("Skipping document: %s", exc)
    return documents
