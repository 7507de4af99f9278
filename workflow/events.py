"""
Typed records emitted by the workflow services.

``VisitSnapshot`` is what a completed visit freezes into its medical
history row.  ``QueueEvent`` is what gets broadcast to department
screens whenever a visit or order changes queue.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Optional


@dataclass
class OrderLine:
    kind: str
    order_id: int
    name: str
    status: str
    result: str = ''


@dataclass
class MedicationLine:
    order_id: int
    name: str
    strength: str
    quantity: int
    frequency: str
    duration: str
    status: str


@dataclass
class BillingLine:
    billing_id: int
    billing_type: str
    status: str
    total_amount: str


@dataclass
class VisitSnapshot:
    visit_uid: str
    patient_id: int
    doctor_id: Optional[int]
    diagnosis: str
    diagnosis_details: str = ''
    instructions: str = ''
    is_emergency: bool = False
    vitals: list[dict[str, Any]] = field(default_factory=list)
    investigations: list[OrderLine] = field(default_factory=list)
    medications: list[MedicationLine] = field(default_factory=list)
    billings: list[BillingLine] = field(default_factory=list)
    follow_up_appointment_id: Optional[int] = None
    kind: str = 'visit.completed'

    def to_json(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class QueueEvent:
    """A queue-changed notification. ``queues`` names the screens to refresh."""
    action: str
    visit_id: int
    status: str
    queues: list[str]
    ts: str
    order_kind: Optional[str] = None
    order_id: Optional[int] = None

    def to_message(self) -> dict[str, Any]:
        msg = asdict(self)
        msg['type'] = 'queue.changed'
        return msg


def money(value: Decimal) -> str:
    return f"{value:.2f}"
