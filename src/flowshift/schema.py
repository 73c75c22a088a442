from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from flowshift.model import Location, Position


class PositionDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    line: int
    column: int


class LocationDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    start: PositionDTO
    end: PositionDTO

    @classmethod
    def from_location(cls, location: Location) -> LocationDTO:
        return cls(
            path=location.path,
            start=PositionDTO(line=location.start.line, column=location.start.column),
            end=PositionDTO(line=location.end.line, column=location.end.column),
        )

    def to_location(self) -> Location:
        return Location(
            path=self.path,
            start=Position(self.start.line, self.start.column),
            end=Position(self.end.line, self.end.column),
        )


class MigrationReport(BaseModel):
    skipped_large_files: List[str] = []
    failed_files: List[str] = []
    type_parameter_with_variance: List[LocationDTO] = []
    object_property_with_internal_name: List[LocationDTO] = []
    object_property_with_minus_variance: List[LocationDTO] = []
    unsupported_type_cast: List[LocationDTO] = []
    unannotated_parameter: List[LocationDTO] = []
    any_alias_usage: Dict[str, int] = {}
    unrecognized_utility_types: List[str] = []


class BatchMessage(BaseModel):
    type: Literal["batch"] = "batch"
    files: List[str]


class NextMessage(BaseModel):
    type: Literal["next"] = "next"


class ReportRequestMessage(BaseModel):
    type: Literal["report-request"] = "report-request"


class ReportMessage(BaseModel):
    type: Literal["report"] = "report"
    data: MigrationReport


ProtocolMessage = Annotated[
    Union[BatchMessage, NextMessage, ReportRequestMessage, ReportMessage],
    Field(discriminator="type"),
]

PROTOCOL_MESSAGE_ADAPTER: TypeAdapter[ProtocolMessage] = TypeAdapter(ProtocolMessage)
