from __future__ import annotations

from stopover_chat.domain.entities.conversation_state import ConversationStep
from stopover_chat.domain.entities.customer import BookingData, CustomerData

RETRY_REPLIES: tuple[str, ...] = ("Try again", "Start over")

STEP_REPLIES: dict[ConversationStep, tuple[str, ...]] = {
    ConversationStep.WELCOME: ("Show me stopover options", "Tell me about Doha", "Not right now"),
    ConversationStep.CATEGORY_SELECTION: ("Premium", "What's the difference between them?"),
    ConversationStep.HOTEL_SELECTION: ("Millennium Hotel Doha", "Which hotel is closest to the airport?"),
    ConversationStep.TIMING_DURATION: ("Outbound, 2 nights", "Return, 1 night"),
    ConversationStep.EXTRAS_SELECTION: ("Add airport transfers", "No extras, thanks"),
    ConversationStep.BOOKING_SUMMARY: ("Pay by card", "Pay with points"),
    ConversationStep.PAYMENT: ("I've submitted my payment details",),
    ConversationStep.CONFIRMATION: ("Email my confirmation",),
}


def build_greeting(customer: CustomerData, booking: BookingData) -> str:
    route = booking.route
    return (
        f"Hello {customer.name}! I'm here to help you add a stopover in Doha to your booking "
        f"{booking.pnr} from {route.origin} to {route.destination}. "
        "Would you like to see our stopover packages?"
    )


def suggested_replies_for(step: ConversationStep) -> tuple[str, ...]:
    return STEP_REPLIES.get(step, ())


def is_start_over(text: str) -> bool:
    normalized = " ".join(text.lower().split())
    return normalized in {"start over", "restart", "start again"}
