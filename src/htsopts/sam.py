"""SAM/BAM reading under :class:`SamReaderOptions`.

Every record is first offered to the session's downsampler (one call per
record, in file order) and then to the read-requirements filter. Parsing,
writing and indexing are done by pysam/htslib.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional

import pysam
from tqdm import tqdm

from .downsampling import ReadSampler
from .filtering import REJECTION_REASONS, ReadRequirementsFilter
from .models import AuxFieldHandling, IndexHandlingMode, SamReaderOptions
from .serialization import to_dict
from .validation import require_index_for_mode

logger = logging.getLogger(__name__)


@dataclass
class FilterStats:
    """Counters for one reader session."""

    reads_total: int = 0
    reads_kept: int = 0
    reads_downsampled: int = 0
    rejected: Dict[str, int] = field(default_factory=lambda: {r: 0 for r in REJECTION_REASONS})

    @property
    def reads_rejected(self) -> int:
        return sum(self.rejected.values())

    def as_dict(self) -> Dict[str, object]:
        return {
            "reads_total": self.reads_total,
            "reads_kept": self.reads_kept,
            "reads_downsampled": self.reads_downsampled,
            "reads_rejected": self.reads_rejected,
            "rejected": dict(self.rejected),
        }


def open_alignment_file(path: str | Path, options: SamReaderOptions) -> pysam.AlignmentFile:
    """Open a SAM/BAM/CRAM for reading, requiring an index when the options ask for one."""
    require_index_for_mode(path, options.index_mode)
    if options.hts_block_size > 0:
        logger.debug(
            "hts_block_size=%d requested; pysam does not expose the block size, using htslib default",
            options.hts_block_size,
        )
    return pysam.AlignmentFile(str(path), "r", check_sq=False)


def iter_reads(
    path: str | Path,
    options: SamReaderOptions,
    *,
    region: Optional[str] = None,
    stats: Optional[FilterStats] = None,
    progress: bool = False,
) -> Iterator[pysam.AlignedSegment]:
    """Yield the reads of ``path`` that survive downsampling and the read requirements.

    ``region`` (e.g. ``chr1:100-200``) needs index mode INDEX_BASED_ON_FILENAME.
    Pass a :class:`FilterStats` to collect counters.
    """
    if region is not None and options.index_mode != IndexHandlingMode.INDEX_BASED_ON_FILENAME:
        raise ValueError(
            "Region queries need an index; set index_mode to INDEX_BASED_ON_FILENAME."
        )
    if stats is None:
        stats = FilterStats()

    sampler = ReadSampler.for_options(options)
    read_filter = ReadRequirementsFilter(options.read_requirements)
    skip_aux = options.aux_field_handling == AuxFieldHandling.SKIP_AUX_FIELDS

    with open_alignment_file(path, options) as bam:
        if region is not None:
            it: Iterable[pysam.AlignedSegment] = bam.fetch(region=region)
        else:
            it = bam.fetch(until_eof=True)
        if progress:
            it = tqdm(it, unit="read", desc="Reading")

        for read in it:
            stats.reads_total += 1
            if not sampler.keep():
                stats.reads_downsampled += 1
                continue
            reason = read_filter.reason(read)
            if reason is not None:
                stats.rejected[reason] += 1
                continue
            if skip_aux:
                read.set_tags([])
            stats.reads_kept += 1
            yield read


_WRITE_MODES = {".bam": "wb", ".sam": "w"}


def _write_mode(path: Path, index_mode: IndexHandlingMode) -> str:
    """pysam write mode for ``path``; indexed output must be BAM."""
    mode = _WRITE_MODES.get(path.suffix)
    if mode is None:
        raise ValueError(f"Output must end in .bam or .sam, got: {path}")
    if index_mode == IndexHandlingMode.INDEX_BASED_ON_FILENAME and path.suffix != ".bam":
        raise ValueError(f"Indexed output must end in .bam, got: {path}")
    return mode


def filter_bam(
    in_path: str | Path,
    out_path: str | Path,
    options: SamReaderOptions,
    *,
    region: Optional[str] = None,
    progress: bool = True,
) -> Dict[str, object]:
    """Write the reads of ``in_path`` accepted under ``options`` to ``out_path``.

    The output is indexed when the options use INDEX_BASED_ON_FILENAME, which
    requires a ``.bam`` path. Only ``.bam`` and ``.sam`` outputs are written.
    Returns a summary dict with counters and the options used.
    """
    t0 = time.time()
    in_p = Path(in_path)
    out_p = Path(out_path)
    mode = _write_mode(out_p, options.index_mode)
    out_p.parent.mkdir(parents=True, exist_ok=True)

    with pysam.AlignmentFile(str(in_p), "r", check_sq=False) as src:
        header = src.header.to_dict()

    stats = FilterStats()
    with pysam.AlignmentFile(str(out_p), mode, header=header) as out:
        for read in iter_reads(in_p, options, region=region, stats=stats, progress=progress):
            out.write(read)

    index_path: Optional[str] = None
    if options.index_mode == IndexHandlingMode.INDEX_BASED_ON_FILENAME:
        pysam.index(str(out_p))
        index_path = str(out_p) + ".bai"

    dt = time.time() - t0
    logger.info(
        "Kept %d of %d reads (%d downsampled, %d rejected) in %.2fs",
        stats.reads_kept,
        stats.reads_total,
        stats.reads_downsampled,
        stats.reads_rejected,
        dt,
    )

    return {
        "in_path": str(in_p),
        "out_path": str(out_p),
        "index_path": index_path,
        "region": region,
        "options": to_dict(options),
        "counts": stats.as_dict(),
        "runtime_seconds": float(dt),
    }
