from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatSession(BaseModel):
    sessionId: str


class GroundingSource(BaseModel):
    uri: str
    title: str


class ChatMessage(BaseModel):
    id: str
    role: Literal["user", "model"]
    text: str
    sources: Optional[List[GroundingSource]] = None


class SendMessageRequest(BaseModel):
    # Loosely typed: an id of the wrong type is an unknown session, not a bad request.
    sessionId: Optional[Any] = None
    message: Optional[Any] = None


class Flights(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    departure: str = ""
    return_flight: str = Field(default="", alias="return")


class DailyPlan(BaseModel):
    day: str
    activities: List[str]


class JourneySummary(BaseModel):
    dates: List[str] = Field(default_factory=list)
    hotel: str = ""
    flights: Flights = Field(default_factory=Flights)
    dailyPlans: List[DailyPlan] = Field(default_factory=list)


class JourneySummaryResponse(BaseModel):
    success: bool
    summary: Optional[JourneySummary] = None
    message: str
    error: Optional[str] = None
