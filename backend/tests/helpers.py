"""Sample slots shared by the test modules."""
from datetime import date, time

from src.models.proposed_slots import ProposedSlot


SLOT_1 = ProposedSlot(date(2026, 11, 3), time(10, 0))
SLOT_2 = ProposedSlot(date(2026, 11, 3), time(14, 30))
SLOT_3 = ProposedSlot(date(2026, 11, 4), time(9, 15))
