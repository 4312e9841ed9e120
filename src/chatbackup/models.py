"""Data models for conversation messages, backup envelopes and stored records."""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["user", "ai", "system"]
AnomalyType = Literal["WORD", "EQUATION", "CODE", "ENTITY", "UNKNOWN"]
Severity = Literal["low", "medium", "high"]


class CamelModel(BaseModel):
    """Base for models whose wire form uses camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ConversationMessage(CamelModel):
    role: Role
    text: str = Field(validation_alias=AliasChoices("text", "content"))
    timestamp: str | None = None
    is_reflective: bool | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value):
        # Chat-completion style payloads say "assistant" where we say "ai"
        if value == "assistant":
            return "ai"
        return value


class EnvelopeMetadata(CamelModel):
    message_count: int
    generated_by: str


class BackupEnvelope(CamelModel):
    version: str
    timestamp: str
    conversation_history: list[ConversationMessage] = []
    metadata: EnvelopeMetadata


class BackupSummary(CamelModel):
    id: str
    file_name: str
    message_count: int = 0
    version: str
    file_size: int
    description: str | None = None
    created_at: str
    updated_at: str


class BackupRecord(BackupSummary):
    binary_data: str

    def summary(self) -> BackupSummary:
        return BackupSummary.model_validate(self.model_dump(exclude={"binary_data"}))


class Anomaly(BaseModel):
    type: AnomalyType
    item: str
    reason: str
    position: int | None = None
    line: int | None = None
    severity: Severity


class AuditReport(CamelModel):
    generated: str
    model: str
    anomalies: list[Anomaly] = []
    total: int = 0
    buffer_size: int = 0
    custom_notes: str | None = None


class ArchiveEntry(CamelModel):
    name: str
    size: int
    compressed_size: int
