from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional

class QuestionAnswerEntry(BaseModel):
    id: int
    title: str = ""
    body: str = ""
    keywords: List[str] = []

    model_config = ConfigDict(frozen=True, extra="ignore")

class Coordinates(BaseModel):
    lat: float
    lng: float

    model_config = ConfigDict(frozen=True)

class RetrievalResult(BaseModel):
    found: bool = False
    entry_id: Optional[int] = None
    title: str = ""
    answer: str = ""
    keywords: List[str] = []
    lat: Optional[float] = None
    lng: Optional[float] = None
    strategy: Optional[str] = None  # 'location' | 'keyword' | 'word' | 'text'
    matched_token: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

class ChatTurn(BaseModel):
    role: str
    content: str

    @field_validator("role")
    @classmethod
    def _normalize_role(cls, value: str) -> str:
        role = str(value or "").strip().lower()
        if role not in {"user", "assistant"}:
            raise ValueError("role must be 'user' or 'assistant'")
        return role

class Contact(BaseModel):
    organization: Optional[str] = None
    category: Optional[str] = None
    contact: Optional[str] = None

class WebSearchResult(BaseModel):
    success: bool = False
    link: Optional[str] = None
    snippet: str = ""

class AIChatResult(BaseModel):
    success: bool = False
    message: str = ""
    usage: Dict[str, Any] = {}
    error_type: Optional[str] = None

class EnhanceResult(BaseModel):
    success: bool = False
    answer: str = ""

class ResolutionResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    source: str = "none"  # 'database' | 'google-fallback' | 'ai' | 'none'
    enhanced: bool = False
    strategy: Optional[str] = None
    database_title: Optional[str] = None
    database_answer: Optional[str] = None
    database_lat: Optional[float] = None
    database_lng: Optional[float] = None
    database_map_url: Optional[str] = None
    google_link: Optional[str] = None
    contacts: List[Contact] = Field(default_factory=list)
    message_count: Optional[int] = None
    error: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        """camelCase dict for the calling application, empty fields dropped."""
        return self.model_dump(by_alias=True, exclude_none=True)
