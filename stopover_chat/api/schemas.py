from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stopover_chat.domain.entities.customer import BookingData, CustomerData, FlightRoute


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessageSchema(CamelModel):
    role: Literal["user", "assistant", "system"]
    content: str


class CustomerSchema(CamelModel):
    name: str = "Valued Customer"
    loyalty_number: str | None = None
    email: str | None = None
    tier: str | None = None
    loyalty_balance: int | None = None

    def to_entity(self) -> CustomerData:
        return CustomerData(
            name=self.name,
            loyalty_number=self.loyalty_number,
            email=self.email,
            tier=self.tier,
            loyalty_balance=self.loyalty_balance,
        )


class RouteSchema(CamelModel):
    origin: str
    destination: str
    stops: list[str] = Field(default_factory=list)
    departure_date: str | None = None
    return_date: str | None = None


class BookingSchema(CamelModel):
    pnr: str
    route: RouteSchema | None = None
    passengers: int = Field(default=1, ge=1)
    status: str = "confirmed"

    def to_entity(self) -> BookingData:
        if self.route is None:
            return BookingData(pnr=self.pnr, passengers=self.passengers, status=self.status)
        route = FlightRoute(
            origin=self.route.origin,
            destination=self.route.destination,
            stops=tuple(self.route.stops),
            departure_date=self.route.departure_date,
            return_date=self.route.return_date,
        )
        return BookingData(pnr=self.pnr, route=route, passengers=self.passengers, status=self.status)


class ConversationContextSchema(CamelModel):
    customer: CustomerSchema | None = None
    booking: BookingSchema | None = None
    current_step: str | None = None


class InteractionSchema(CamelModel):
    """A click on a rendered component, sent instead of typed text."""

    action: str
    data: dict[str, Any] = Field(default_factory=dict)


class ChatRequestSchema(CamelModel):
    messages: list[ChatMessageSchema] = Field(default_factory=list)
    conversation_context: ConversationContextSchema | None = None
    session_id: str | None = None
    conversation_id: str | None = None
    customer_id: str | None = None
    entry_point: str = "email"
    interaction: InteractionSchema | None = None


class ChatResponseSchema(CamelModel):
    message: str
    ui_component: dict[str, Any] | None = None
    widget: dict[str, Any] | None = None
    tool_results: list[dict[str, Any]] = Field(default_factory=list)
    current_step: str
    suggested_replies: list[str] = Field(default_factory=list)
    conversation_id: str
    session_id: str | None = None
    model: str | None = None


class ErrorResponseSchema(BaseModel):
    error: str
    type: str | None = None
    retryable: bool | None = None
    details: Any = None


class DataServicesRequestSchema(CamelModel):
    action: str
    session_id: str | None = None
    customer_id: str | None = None
    booking_ref: str | None = None
    entry_point: str = "email"
    user_agent: str | None = None
    ip_address: str | None = None
    state: dict[str, Any] | None = None
