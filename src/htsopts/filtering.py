"""Read requirements predicate.

Reads are duck-typed: anything exposing the ``pysam.AlignedSegment`` flag and
position attributes used below works, so the predicate can be exercised on
real BAM records as well as on lightweight stand-ins.

Flag checks run before the mapping-quality check. Base quality is never
enforced here; see :func:`client_min_base_quality`.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

from .models import MinBaseQualityMode, ReadRequirements

DUPLICATE = "duplicate"
FAILED_VENDOR_QC = "failed_vendor_qc"
SECONDARY = "secondary"
SUPPLEMENTARY = "supplementary"
UNALIGNED = "unaligned"
IMPROPERLY_PLACED = "improperly_placed"
LOW_MAPPING_QUALITY = "low_mapping_quality"

REJECTION_REASONS: Tuple[str, ...] = (
    DUPLICATE,
    FAILED_VENDOR_QC,
    SECONDARY,
    SUPPLEMENTARY,
    UNALIGNED,
    IMPROPERLY_PLACED,
    LOW_MAPPING_QUALITY,
)


def is_improperly_placed(read: Any) -> bool:
    """True for an aligned, paired read whose mate is mapped to a different contig."""
    if read.is_unmapped or not read.is_paired or read.mate_is_unmapped:
        return False
    return int(read.next_reference_id) != int(read.reference_id)


def rejection_reason(read: Any, requirements: ReadRequirements) -> Optional[str]:
    """Return the name of the first requirement ``read`` fails, or None if it passes."""
    req = requirements
    if read.is_duplicate and not req.keep_duplicates:
        return DUPLICATE
    if read.is_qcfail and not req.keep_failed_vendor_quality_checks:
        return FAILED_VENDOR_QC
    if read.is_secondary and not req.keep_secondary_alignments:
        return SECONDARY
    if read.is_supplementary and not req.keep_supplementary_alignments:
        return SUPPLEMENTARY

    if read.is_unmapped:
        # Unaligned reads have no placement or mapping quality to check.
        return None if req.keep_unaligned else UNALIGNED

    if not req.keep_improperly_placed and is_improperly_placed(read):
        return IMPROPERLY_PLACED
    if req.min_mapping_quality > 0 and int(read.mapping_quality) < req.min_mapping_quality:
        return LOW_MAPPING_QUALITY
    return None


def read_satisfies_requirements(read: Any, requirements: ReadRequirements) -> bool:
    return rejection_reason(read, requirements) is None


def client_min_base_quality(requirements: ReadRequirements) -> Optional[int]:
    """Base-quality threshold the caller is expected to apply, if any.

    Readers never enforce ``min_base_quality``. Under
    ENFORCED_BY_CLIENT the threshold is handed back to the caller; under
    UNSPECIFIED it is ignored altogether.
    """
    if requirements.min_base_quality_mode == MinBaseQualityMode.ENFORCED_BY_CLIENT:
        return requirements.min_base_quality
    return None


class ReadRequirementsFilter:
    """Callable wrapper binding a :class:`ReadRequirements` value."""

    def __init__(self, requirements: ReadRequirements) -> None:
        self.requirements = requirements

    def __call__(self, read: Any) -> bool:
        return read_satisfies_requirements(read, self.requirements)

    def reason(self, read: Any) -> Optional[str]:
        return rejection_reason(read, self.requirements)

    @property
    def client_min_base_quality(self) -> Optional[int]:
        return client_min_base_quality(self.requirements)

    def __repr__(self) -> str:
        return f"ReadRequirementsFilter({self.requirements!r})"
