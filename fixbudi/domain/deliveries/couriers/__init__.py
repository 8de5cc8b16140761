"""Courier integrations keyed by provider name"""

from ....errors import ValidationError
from .base import CourierAdapter, CourierBooking, CourierBookingResult, CourierEvent, CourierQuote, Party
from .sendstack import SendStackAdapter
from .terminal_africa import TerminalAfricaAdapter

COURIERS = {
    TerminalAfricaAdapter.name: TerminalAfricaAdapter,
    SendStackAdapter.name: SendStackAdapter,
}


def get_courier(provider: str, **kwargs) -> CourierAdapter:
    courier_class = COURIERS.get((provider or "").strip().lower())
    if not courier_class:
        raise ValidationError(f"Unsupported delivery provider '{provider}'. Use one of: {', '.join(COURIERS)}")
    return courier_class(**kwargs)


__all__ = [
    "COURIERS",
    "CourierAdapter",
    "CourierBooking",
    "CourierBookingResult",
    "CourierEvent",
    "CourierQuote",
    "Party",
    "SendStackAdapter",
    "TerminalAfricaAdapter",
    "get_courier",
]
