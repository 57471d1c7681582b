from .catalog import Product, Location, Vendor
from .inventory import (
    StockLevel,
    MoveHistoryEntry,
    MOVE_RECEIPT,
    MOVE_DELIVERY,
    MOVE_ADJUSTMENT_INCREASE,
    MOVE_ADJUSTMENT_DECREASE,
    MOVE_TRANSFER_OUT,
    MOVE_TRANSFER_IN,
    VALID_MOVE_TYPES,
)
from .documents import (
    StockDelta,
    Receipt,
    ReceiptLine,
    Delivery,
    DeliveryLine,
    Transfer,
    TransferLine,
    Adjustment,
    AdjustmentLine,
    DocumentSequence,
)
from .billing import Invoice, InvoiceLine, Payment, PaymentEvent

__all__ = [
    'Product', 'Location', 'Vendor',
    'StockLevel', 'MoveHistoryEntry',
    'MOVE_RECEIPT', 'MOVE_DELIVERY', 'MOVE_ADJUSTMENT_INCREASE', 'MOVE_ADJUSTMENT_DECREASE',
    'MOVE_TRANSFER_OUT', 'MOVE_TRANSFER_IN', 'VALID_MOVE_TYPES',
    'StockDelta',
    'Receipt', 'ReceiptLine', 'Delivery', 'DeliveryLine',
    'Transfer', 'TransferLine', 'Adjustment', 'AdjustmentLine',
    'DocumentSequence',
    'Invoice', 'InvoiceLine', 'Payment', 'PaymentEvent',
]
