from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class DocumentStatusCode(str, Enum):
    queued = "queued"
    translating = "translating"
    done = "done"
    error = "error"


class DocumentHandle(BaseModel):
    """Identifies an uploaded document; both fields are needed for follow-up calls"""

    model_config = ConfigDict(frozen=True)

    document_id: str
    document_key: str


class DocumentStatus(BaseModel):
    document_id: str
    status: DocumentStatusCode
    seconds_remaining: Optional[int] = None
    billed_characters: Optional[int] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != DocumentStatusCode.error

    @property
    def done(self) -> bool:
        return self.status == DocumentStatusCode.done


class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    per_attempt_timeout: float = Field(10.0, gt=0)
    overall_timeout: float = Field(100.0, gt=0)
    max_attempts: int = Field(6, ge=1)
    backoff_initial: float = Field(1.0, ge=0)
    backoff_multiplier: float = Field(1.6, ge=1.0)
    backoff_max: float = Field(120.0, ge=0)
    backoff_jitter: float = Field(0.23, ge=0.0, lt=1.0)


class Formality(str, Enum):
    default = "default"
    less = "less"
    more = "more"
    prefer_less = "prefer_less"
    prefer_more = "prefer_more"


class SentenceSplittingMode(str, Enum):
    all = "all"
    off = "off"
    no_newlines = "no_newlines"


class DocumentTranslateOptions(BaseModel):
    formality: Formality = Formality.default
    glossary_id: Optional[str] = None
    enable_document_minification: bool = False


class TextTranslateOptions(BaseModel):
    formality: Formality = Formality.default
    glossary_id: Optional[str] = None
    context: Optional[str] = None
    sentence_splitting: SentenceSplittingMode = SentenceSplittingMode.all
    preserve_formatting: bool = False
    tag_handling: Optional[str] = None


class TextResult(BaseModel):
    text: str
    detected_source_language: str
    billed_characters: int = 0


class UsageDetail(BaseModel):
    count: int
    limit: int

    @property
    def limit_reached(self) -> bool:
        return self.count >= self.limit


class Usage(BaseModel):
    character: Optional[UsageDetail] = None
    document: Optional[UsageDetail] = None
    team_document: Optional[UsageDetail] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "Usage":
        """Builds usage from the flat ``<resource>_count``/``<resource>_limit`` response fields"""
        details = {}
        for resource in ("character", "document", "team_document"):
            count = data.get(f"{resource}_count")
            limit = data.get(f"{resource}_limit")
            if count is not None and limit is not None:
                details[resource] = UsageDetail(count=count, limit=limit)
        return cls(**details)

    @property
    def any_limit_reached(self) -> bool:
        return any(
            detail is not None and detail.limit_reached
            for detail in (self.character, self.document, self.team_document)
        )


class Language(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(alias="language")
    name: str
    supports_formality: Optional[bool] = None


class GlossaryInfo(BaseModel):
    glossary_id: str
    name: str
    ready: bool
    source_lang: str
    target_lang: str
    creation_time: datetime
    entry_count: int


class GlossaryLanguagePair(BaseModel):
    source_lang: str
    target_lang: str


class TranslatorOptions(BaseModel):
    server_url: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    document_poll_interval: float = Field(5.0, gt=0)
    glossary_poll_interval: float = Field(2.0, gt=0)
    send_platform_info: bool = True
    app_info: Optional[str] = None
