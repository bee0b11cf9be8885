from .suppliers import Supplier
from .advances import Advance, AdvanceSettlement
from .transactions import GoldTransaction
from .inventory import InventoryBatch, InventoryMovement
from .prices import PriceObservation
from .settings import BusinessSettings
from .ledger import LedgerEvent

__all__ = [
    'Supplier',
    'Advance', 'AdvanceSettlement',
    'GoldTransaction',
    'InventoryBatch', 'InventoryMovement',
    'PriceObservation',
    'BusinessSettings',
    'LedgerEvent',
]
