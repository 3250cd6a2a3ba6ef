"""Wire models the client reads from and writes to the chat server."""

from typing import List, Literal, Optional

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


class Flights(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    departure: str = ""
    return_flight: str = Field(default="", alias="return")


class DailyPlan(BaseModel):
    day: str
    activities: List[str] = Field(default_factory=list)


class JourneySummary(BaseModel):
    dates: List[str] = Field(default_factory=list)
    hotel: str = ""
    flights: Flights = Field(default_factory=Flights)
    dailyPlans: List[DailyPlan] = Field(default_factory=list)
