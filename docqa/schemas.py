"""Request bodies accepted by the HTTP API."""
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from docqa import config


class PageInput(BaseModel):
    """One page of already-extracted text."""
    page: Optional[int] = Field(default=None, description="1-based page number", ge=0)
    text: str


class DocumentRequest(BaseModel):
    """Input for indexing a document by path or as inline pages."""
    path: Optional[str] = Field(default=None, description="PDF or text file on the server")
    pages: Optional[List[PageInput]] = Field(default=None, min_length=1)
    source: Optional[str] = Field(default=None, description="Display name for citations")
    append: bool = Field(default=False, description="Keep the current index")

    @model_validator(mode="after")
    def require_document(self) -> "DocumentRequest":
        if self.path is None and self.pages is None:
            raise ValueError("Missing 'path' or 'pages' in request body")
        return self

    def numbered_pages(self) -> List[tuple]:
        """(page_number, text) pairs, numbering pages without an explicit number."""
        return [
            (p.page if p.page is not None else i, p.text)
            for i, p in enumerate(self.pages or [], 1)
        ]


class QueryRequest(BaseModel):
    """Input for similarity retrieval."""
    query: str
    limit: Optional[int] = Field(default=None, description="Maximum results", ge=1)


class AskRequest(BaseModel):
    """Input for answering a question."""
    question: str = Field(..., max_length=config.MAX_QUESTION_CHARS)
    limit: Optional[int] = Field(default=None, description="Chunks used as context", ge=1)
    stream: bool = Field(default=False, description="Stream plain-text fragments")

    @field_validator("question")
    @classmethod
    def question_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Question cannot be empty")
        return value
