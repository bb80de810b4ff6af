"""Index sidecar naming convention and checks."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .models import IndexHandlingMode

logger = logging.getLogger(__name__)


def index_candidates(data_path: str | Path) -> List[Path]:
    """Index paths that may accompany ``data_path``, in order of preference."""
    p = Path(data_path)
    name = p.name
    if name.endswith(".bam"):
        return [
            p.with_name(name + ".bai"),
            p.with_suffix(".bai"),
            p.with_name(name + ".csi"),
        ]
    if name.endswith(".cram"):
        return [p.with_name(name + ".crai"), p.with_suffix(".crai")]
    if name.endswith((".vcf.gz", ".bcf", ".bed.gz", ".gff.gz")):
        return [p.with_name(name + ".tbi"), p.with_name(name + ".csi")]
    if name.endswith((".fa", ".fasta", ".fna", ".fa.gz", ".fasta.gz")):
        return [p.with_name(name + ".fai")]
    return [p.with_name(name + ".csi")]


def find_index(data_path: str | Path) -> Optional[Path]:
    for cand in index_candidates(data_path):
        if cand.exists():
            return cand
    return None


def _fix_hint(data_path: Path) -> str:
    name = data_path.name
    if name.endswith((".bam", ".cram")):
        return "Run: samtools index " + str(data_path)
    if name.endswith(".vcf.gz"):
        return "Run: tabix -p vcf " + str(data_path)
    if name.endswith(".vcf"):
        return (
            "Compress and index it: bgzip -c "
            + str(data_path)
            + " > "
            + str(data_path)
            + ".gz; tabix -p vcf "
            + str(data_path)
            + ".gz"
        )
    if name.endswith((".fa", ".fasta", ".fna", ".fa.gz", ".fasta.gz")):
        return "Run: samtools faidx " + str(data_path)
    return "Create an index next to the file or use index mode DONT_USE_INDEX."


def check_index(data_path: str | Path) -> Path:
    """Return the index of ``data_path``; raise ValueError with fix instructions if missing."""
    p = Path(data_path)
    found = find_index(p)
    if found is None:
        raise ValueError(f"{p} is not indexed. {_fix_hint(p)}")
    logger.debug("Using index %s for %s", found, p)
    return found


def require_index_for_mode(data_path: str | Path, mode: IndexHandlingMode) -> Optional[Path]:
    """Enforce ``mode`` for a reader: the index must exist under INDEX_BASED_ON_FILENAME."""
    if mode == IndexHandlingMode.INDEX_BASED_ON_FILENAME:
        return check_index(data_path)
    return None
