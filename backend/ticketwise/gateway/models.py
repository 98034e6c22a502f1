from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class GatewayRecord(BaseModel):
    """Read-only projection of a ConnectWise record; every field is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class Reference(GatewayRecord):
    """Embedded `{id, name}` reference such as board, status or company."""

    id: Optional[int] = None
    name: Optional[str] = None
    identifier: Optional[str] = None


class CustomField(GatewayRecord):
    id: Optional[int] = None
    caption: Optional[str] = None
    value: Optional[Union[str, int, float, bool]] = None


class RecordInfo(GatewayRecord):
    last_updated: Optional[str] = Field(default=None, alias="lastUpdated")


class TicketRecord(GatewayRecord):
    id: int
    summary: Optional[str] = None
    initial_description: Optional[str] = Field(default=None, alias="initialDescription")
    initial_internal_analysis: Optional[str] = Field(
        default=None, alias="initialInternalAnalysis"
    )
    initial_resolution: Optional[str] = Field(default=None, alias="initialResolution")
    board: Optional[Reference] = None
    status: Optional[Reference] = None
    priority: Optional[Reference] = None
    company: Optional[Reference] = None
    contact: Optional[Reference] = None
    contact_name: Optional[str] = Field(default=None, alias="contactName")
    type: Optional[Reference] = None
    sub_type: Optional[Reference] = Field(default=None, alias="subType")
    item: Optional[Reference] = None
    resources: Optional[str] = None
    owner: Optional[Reference] = None
    date_entered: Optional[str] = Field(default=None, alias="dateEntered")
    last_updated: Optional[str] = Field(default=None, alias="lastUpdated")
    budget_hours: Optional[float] = Field(default=None, alias="budgetHours")
    actual_hours: Optional[float] = Field(default=None, alias="actualHours")
    custom_fields: List[CustomField] = Field(default_factory=list, alias="customFields")
    info: Optional[RecordInfo] = Field(default=None, alias="_info")

    @property
    def status_name(self) -> str:
        return (self.status.name if self.status else None) or ""


class NoteRecord(GatewayRecord):
    id: int
    ticket_id: Optional[int] = Field(default=None, alias="ticketId")
    text: Optional[str] = None
    detail_description_flag: bool = Field(default=False, alias="detailDescriptionFlag")
    internal_analysis_flag: bool = Field(default=False, alias="internalAnalysisFlag")
    resolution_flag: bool = Field(default=False, alias="resolutionFlag")
    customer_updated_flag: bool = Field(default=False, alias="customerUpdatedFlag")
    external_flag: bool = Field(default=False, alias="externalFlag")
    member: Optional[Reference] = None
    contact: Optional[Reference] = None
    date_created: Optional[str] = Field(default=None, alias="dateCreated")
    created_by: Optional[str] = Field(default=None, alias="createdBy")

    @property
    def author(self) -> Optional[str]:
        return (
            (self.member.name if self.member else None)
            or (self.contact.name if self.contact else None)
            or self.created_by
        )

    @property
    def created_at(self) -> Optional[datetime]:
        return parse_timestamp(self.date_created)


class ConfigurationRecord(GatewayRecord):
    id: int
    name: Optional[str] = None
    type: Optional[Reference] = None
    status: Optional[Reference] = None
    company: Optional[Reference] = None
    serial_number: Optional[str] = Field(default=None, alias="serialNumber")
    model_number: Optional[str] = Field(default=None, alias="modelNumber")
    tag_number: Optional[str] = Field(default=None, alias="tagNumber")
    notes: Optional[str] = None
    last_login_name: Optional[str] = Field(default=None, alias="lastLoginName")
    os_type: Optional[str] = Field(default=None, alias="osType")
    os_info: Optional[str] = Field(default=None, alias="osInfo")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 gateway timestamp; unparseable values count as missing."""

    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def sort_notes(notes: list[NoteRecord]) -> list[NoteRecord]:
    """Sort notes ascending by creation time; notes without a timestamp come first."""

    return sorted(notes, key=lambda note: (note.created_at is not None, note.created_at or datetime.min))
