"""
Data models for the library entities
Using Pydantic for validation and serialization

ARCHITECTURE:
- Borrowers and items are the two aggregate roots, keyed by borrowernumber and barcode
- Checkouts link an item to a borrower while the item is out
- History keeps returned checkouts (with the fines they accrued)
- Optional fields (items, history, fees, checkout) are attached on request via flags
  and are only serialized when they have been set
"""

from datetime import date
from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Enums and reference data
# ============================================================================

class BorrowerState(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class ItemState(str, Enum):
    """Lifecycle of an item in the catalogue"""
    CIRCULATING = "CIRCULATING"  # On the shelves, may be checked out
    STORED = "STORED"  # In storage, not lendable
    DELETED = "DELETED"  # Removed from the catalogue
    LOST = "LOST"


ITEM_CATEGORIES = [
    "Buch", "CD", "CD-ROM", "DVD", "Comic", "Multimedia", "Zeitschrift",
    "Kassette", "Computer", "Projector", "DVD Player",
]

ITEM_SUBJECTS = [
    "CD", "CD-ROM", "DVD", "Bilderbuch B-gelb", "Comic C-orange",
    "Erzaehlung E-d gruen", "Fasching", "Halloween", "Leseleiter LL-klar",
    "Maerchen Mae-rot", "Multimedia MM-rosa", "Ostern", "Sachkunde S-blau",
    "Sachkunde Serie - h blau", "St. Martin", "Teen T - h gruen",
    "Uebergroesse - lila", "Weihnachten", "Zeitschrift",
]

ITEM_AGES = [
    "na", "A", "All Ages", "K-1", "K-2", "T-12", "T-17",
    "Leseleiter-1A", "Leseleiter-1B", "Leseleiter-1C", "Leseleiter-2",
    "Leseleiter-3", "Leseleiter-4", "Leseleiter-5", "Leseleiter-6",
    "Leseleiter-7", "Leseleiter-8", "Leseleiter-9", "Leseleiter-10",
    "Lehrer",
]


# ============================================================================
# Records
# ============================================================================

class Record(BaseModel):
    """Base for records loaded from the store"""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True, extra="ignore")

    id: Optional[int] = None


class Checkout(Record):
    """A current checkout or a returned one (history)"""
    barcode: Optional[str] = None
    borrowernumber: Optional[int] = None
    checkout_date: Optional[date] = None
    date_due: Optional[date] = None
    fine_due: float = 0
    fine_paid: float = 0
    returndate: Optional[date] = None  # History only

    # Joined from items / borrowers by the sub-loaders
    title: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None
    surname: Optional[str] = None
    firstname: Optional[str] = None

    @property
    def outstanding_fine(self) -> float:
        return max(0.0, self.fine_due - self.fine_paid)


class FeeInfo(BaseModel):
    """Outstanding fees of a borrower"""
    total: float = 0
    items: List[Checkout] = Field(default_factory=list, description="Current checkouts with outstanding fees")
    history: List[Checkout] = Field(default_factory=list, description="Returned items with outstanding fees")


class Borrower(Record):
    borrowernumber: Optional[int] = None
    surname: Optional[str] = None
    firstname: Optional[str] = Field(None, description="First names of the children")
    contactname: Optional[str] = Field(None, description="Contact names of the parents")
    phone: Optional[str] = None
    emailaddress: Optional[str] = Field(None, description="Comma-separated list of email addresses")
    sycamoreid: Optional[str] = None
    state: Optional[BorrowerState] = None

    # Flags
    items: Optional[List[Checkout]] = None
    history: Optional[List[Checkout]] = None
    fees: Optional[FeeInfo] = None


class Item(Record):
    barcode: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    seriestitle: Optional[str] = None
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    year: Optional[int] = None
    category: Optional[str] = None
    subject: Optional[str] = None
    age: Optional[str] = None
    state: Optional[ItemState] = None
    antolin_sticker: Optional[bool] = None
    description: Optional[str] = None

    # Flags
    checkout: Optional[Checkout] = None
    history: Optional[List[Checkout]] = None
