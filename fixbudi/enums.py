"""Status vocabularies stored as plain strings on the ledger rows"""

from enum import Enum


class JobStatus(str, Enum):
    REQUESTED = "requested"
    QUOTE_NEGOTIATING = "quote_negotiating"
    QUOTE_ACCEPTED = "quote_accepted"
    PICKUP_SCHEDULED = "pickup_scheduled"
    IN_REPAIR = "in_repair"
    REPAIR_COMPLETED = "repair_completed"
    READY_FOR_RETURN = "ready_for_return"
    RETURNED = "returned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATUSES = {JobStatus.COMPLETED, JobStatus.CANCELLED}


class TransitionCause(str, Enum):
    CUSTOMER = "customer"
    REPAIR_CENTER = "repair_center"
    COURIER_WEBHOOK = "courier_webhook"
    COST_ADJUSTMENT = "cost_adjustment"
    COMPLETION_GATE = "completion_gate"
    ADMIN = "admin"


class DeliveryType(str, Enum):
    PICKUP = "pickup"
    RETURN = "return"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    DRIVER_ON_WAY = "driver_on_way"
    DRIVER_ARRIVED = "driver_arrived"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"
    RETURNED = "returned"


# Forward progress order for the non-terminal part of a courier leg
DELIVERY_STATUS_RANK = {
    DeliveryStatus.PENDING: 0,
    DeliveryStatus.ASSIGNED: 1,
    DeliveryStatus.DRIVER_ON_WAY: 2,
    DeliveryStatus.DRIVER_ARRIVED: 3,
    DeliveryStatus.PICKED_UP: 4,
    DeliveryStatus.IN_TRANSIT: 5,
    DeliveryStatus.DELIVERED: 6,
}

TERMINAL_DELIVERY_STATUSES = {
    DeliveryStatus.DELIVERED,
    DeliveryStatus.FAILED,
    DeliveryStatus.CANCELLED,
    DeliveryStatus.RETURNED,
}

CANCELLABLE_DELIVERY_STATUSES = {
    DeliveryStatus.PENDING,
    DeliveryStatus.ASSIGNED,
    DeliveryStatus.DRIVER_ON_WAY,
}


class CashPaymentStatus(str, Enum):
    PENDING = "pending"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ConfirmationType(str, Enum):
    DEVICE_RETURNED = "device_returned"
    REPAIR_SATISFACTION = "repair_satisfaction"
