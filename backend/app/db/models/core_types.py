import enum


class LocationKind(str, enum.Enum):
    warehouse = "warehouse"
    store = "store"


class MovementType(str, enum.Enum):
    adjustment = "ADJUSTMENT"
    transfer_out = "TRANSFER_OUT"
    transfer_return = "TRANSFER_RETURN"
    transfer_in = "TRANSFER_IN"
    purchase_receipt = "PURCHASE_RECEIPT"


class TransferStatus(str, enum.Enum):
    pending = "pending"
    in_transit = "in_transit"
    received = "received"
    partially_received = "partially_received"
    cancelled = "cancelled"


class POStatus(str, enum.Enum):
    pending = "pending"
    in_transit = "in_transit"
    received = "received"
    partial = "partial"
    cancelled = "cancelled"


OPEN_TRANSFER_STATUSES = frozenset({TransferStatus.pending, TransferStatus.in_transit})
OPEN_PO_STATUSES = frozenset({POStatus.pending, POStatus.in_transit})
