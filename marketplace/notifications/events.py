from enum import Enum


class NotificationKind(str, Enum):
    ORDER_CONFIRMATION = "order_confirmation"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILURE = "payment_failure"
    REFUND_PROCESSED = "refund_processed"
