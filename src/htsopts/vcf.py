"""VCF headers and per-call FORMAT selection driven by the VCF reader/writer options."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pysam

from .contigs import header_contig_description
from .models import (
    ContigInfo,
    IndexHandlingMode,
    OptionalVariantFieldsToParse,
    VcfFilterInfo,
    VcfFormatInfo,
    VcfReaderOptions,
    VcfWriterOptions,
)
from .validation import require_index_for_mode

logger = logging.getLogger(__name__)

_PASS = "PASS"

# FORMAT definitions of the optional per-call fields, keyed by the exclude_* flag
# that turns them off. Order is the order they are written in.
OPTIONAL_FORMAT_FIELDS: Tuple[Tuple[str, VcfFormatInfo], ...] = (
    ("exclude_genotype", VcfFormatInfo("GT", "1", "String", "Genotype")),
    ("exclude_genotype_quality", VcfFormatInfo("GQ", "1", "Integer", "Conditional genotype quality")),
    ("exclude_read_depth", VcfFormatInfo("DP", "1", "Integer", "Read depth")),
    ("exclude_allele_depth", VcfFormatInfo("AD", "R", "Integer", "Read depth for each allele")),
    (
        "exclude_genotype_likelihood",
        VcfFormatInfo("GL", "G", "Float", "Genotype likelihoods, log10 encoded"),
    ),
)


def format_infos(fields: OptionalVariantFieldsToParse) -> List[VcfFormatInfo]:
    """FORMAT definitions selected by ``fields``."""
    return [info for flag, info in OPTIONAL_FORMAT_FIELDS if not getattr(fields, flag)]


def desired_format_keys(fields: OptionalVariantFieldsToParse) -> List[str]:
    return [info.id for info in format_infos(fields)]


def build_variant_header(options: VcfWriterOptions) -> pysam.VariantHeader:
    """Build a pysam header carrying the contigs, filters, FORMAT lines and samples of ``options``.

    A non-empty contig description is written as the ``Description`` key of its
    ``##contig`` line.
    """
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")

    for f in options.filters:
        if f.id in header.filters:
            continue
        header.filters.add(f.id, None, None, f.description)

    for info in format_infos(options.desired_format_entries):
        header.formats.add(info.id, info.number, info.type, info.description)

    for c in options.contigs:
        extra = {"Description": c.description} if c.description else {}
        header.contigs.add(c.name, length=c.n_bases if c.n_bases > 0 else None, **extra)

    for s in options.sample_names:
        header.add_sample(s)

    return header


def writer_options_from_header(
    header: pysam.VariantHeader,
    *,
    index_mode: IndexHandlingMode = IndexHandlingMode.DONT_USE_INDEX,
) -> VcfWriterOptions:
    """Recover writer options from an existing header (e.g. to write a compatible VCF).

    The implicit PASS filter is not reported. FORMAT fields outside the optional
    set are ignored.
    """
    contigs = [
        ContigInfo(
            name=name,
            description=header_contig_description(rec),
            n_bases=int(rec.length or 0),
            pos_in_fasta=i,
        )
        for i, (name, rec) in enumerate(header.contigs.items())
    ]
    filters = [
        VcfFilterInfo(id=name, description=str(rec.description or ""))
        for name, rec in header.filters.items()
        if name != _PASS
    ]
    present = set(header.formats.keys())
    excludes = {flag: info.id not in present for flag, info in OPTIONAL_FORMAT_FIELDS}
    return VcfWriterOptions(
        index_mode=index_mode,
        contigs=tuple(contigs),
        sample_names=tuple(header.samples),
        filters=tuple(filters),
        desired_format_entries=OptionalVariantFieldsToParse(**excludes),
    )


def _write_mode(path: Path) -> str:
    name = path.name
    if name.endswith(".bcf"):
        return "wb"
    if name.endswith(".gz"):
        return "wz"
    return "w"


def write_vcf_header(path: str | Path, options: VcfWriterOptions) -> Path:
    """Write a record-less VCF carrying the header described by ``options``.

    With INDEX_BASED_ON_FILENAME the output must be bgzipped (``.vcf.gz``) and a
    tabix index is written next to it.
    """
    p = Path(path)
    indexed = options.index_mode == IndexHandlingMode.INDEX_BASED_ON_FILENAME
    if indexed and not p.name.endswith(".vcf.gz"):
        raise ValueError(f"Indexed VCF output must end in .vcf.gz, got: {p}")

    p.parent.mkdir(parents=True, exist_ok=True)
    header = build_variant_header(options)
    with pysam.VariantFile(str(p), _write_mode(p), header=header):
        pass

    if indexed:
        pysam.tabix_index(str(p), preset="vcf", force=True)
        logger.info("Wrote %s (+ .tbi)", p)
    else:
        logger.info("Wrote %s", p)
    return p


@dataclass(frozen=True)
class VariantCall:
    """One VCF record reduced to the FORMAT fields a reader was asked for."""

    contig: str
    pos: int  # 1-based, as in the VCF
    ref: str
    alts: Tuple[str, ...]
    filters: Tuple[str, ...]
    calls: Dict[str, Dict[str, Any]]


def iter_calls(
    vcf_path: str | Path,
    options: VcfReaderOptions,
    *,
    region: Optional[str] = None,
) -> Iterator[VariantCall]:
    """Iterate records, materialising only the FORMAT entries selected by ``options``."""
    if region is not None and options.index_mode != IndexHandlingMode.INDEX_BASED_ON_FILENAME:
        raise ValueError("Region queries need an index; set index_mode to INDEX_BASED_ON_FILENAME.")
    require_index_for_mode(vcf_path, options.index_mode)

    keys = desired_format_keys(options.desired_format_entries)
    with pysam.VariantFile(str(vcf_path)) as vcf:
        samples = list(vcf.header.samples)
        iterator = vcf.fetch(region=region) if region is not None else vcf
        for rec in iterator:
            present = [k for k in keys if k in rec.format]
            calls: Dict[str, Dict[str, Any]] = {}
            for s in samples:
                sample = rec.samples[s]
                calls[s] = {k: sample[k] for k in present}
            yield VariantCall(
                contig=str(rec.contig),
                pos=int(rec.pos),
                ref=str(rec.ref),
                alts=tuple(rec.alts or ()),
                filters=tuple(rec.filter.keys()),
                calls=calls,
            )
