"""Document-completeness rules for shipment approval.

A shipment may only be approved once the mandatory paperwork for its mode of
transport is attached. Presence is all that matters; several documents of
the same type are allowed and count once.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from shipment_portal.db.models.base import DocumentType, TransportMode

DOCUMENT_TYPE_LABELS: dict[DocumentType, str] = {
    DocumentType.INVOICE: "Invoice",
    DocumentType.PACKING_LIST: "Packing List",
    DocumentType.BILL_OF_LADING: "Bill of Lading (BL)",
    DocumentType.AIR_WAYBILL: "Air Waybill (AWB)",
    DocumentType.OTHER: "Other Document",
}

# Required regardless of mode
UNIVERSAL_REQUIREMENTS: tuple[DocumentType, ...] = (
    DocumentType.INVOICE,
    DocumentType.PACKING_LIST,
)

MODE_REQUIREMENTS: dict[TransportMode, tuple[DocumentType, ...]] = {
    TransportMode.SEA: (DocumentType.BILL_OF_LADING,),
    TransportMode.AIR: (DocumentType.AIR_WAYBILL,),
    TransportMode.ROAD: (),
}


@dataclass(frozen=True, slots=True)
class DocumentCheckResult:
    """Outcome of a completeness check.

    Attributes:
        is_valid: True when nothing is missing.
        errors: One human-readable message per missing type.
        missing_documents: Missing document type values, mode-specific first.
    """

    is_valid: bool
    errors: tuple[str, ...]
    missing_documents: tuple[str, ...]


def required_document_types(mode: TransportMode) -> tuple[DocumentType, ...]:
    """Mandatory document types for a mode, mode-specific ones first."""
    return MODE_REQUIREMENTS[mode] + UNIVERSAL_REQUIREMENTS


def _missing_message(document_type: DocumentType, mode: TransportMode) -> str:
    label = DOCUMENT_TYPE_LABELS[document_type]
    if document_type in UNIVERSAL_REQUIREMENTS:
        return f"{label} is required for all shipments"
    return f"{label} is required for {mode.value} shipments"


def check_documents(
    document_types: Iterable[DocumentType | str],
    mode: TransportMode | str,
) -> DocumentCheckResult:
    """Decide whether the attached documents satisfy the mode's requirements.

    Pure function: it only inspects the given types and never touches storage.

    Args:
        document_types: Types of every document attached to the shipment.
        mode: The shipment's mode of transport.

    Returns:
        DocumentCheckResult listing anything missing.
    """
    mode = TransportMode(mode)
    present = {DocumentType(t) for t in document_types}

    missing = [t for t in required_document_types(mode) if t not in present]

    return DocumentCheckResult(
        is_valid=not missing,
        errors=tuple(_missing_message(t, mode) for t in missing),
        missing_documents=tuple(t.value for t in missing),
    )
