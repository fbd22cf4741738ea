# Ontology Models
from frontdesk.models.ontology import (
    Floor, Room, Guest, Reservation, LedgerEntry, LedgerProductLine,
    Product, StockMovement, Employee
)

__all__ = [
    'Floor', 'Room', 'Guest', 'Reservation', 'LedgerEntry', 'LedgerProductLine',
    'Product', 'StockMovement', 'Employee'
]
