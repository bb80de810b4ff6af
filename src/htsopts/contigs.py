"""Contig metadata loading and contig-name translation tables."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pysam

from .models import ContigInfo, ContigTranslationTable

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"

UCSC = "ucsc"
ENSEMBL = "ensembl"


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return UCSC
    return ENSEMBL


def remap_contig(contig: str, style: str) -> str:
    """Remap a contig name to the requested style (ucsc or ensembl)."""
    if style == UCSC:
        if contig.startswith(_UCSC_PREFIX):
            return contig
        if contig == "MT":
            return "chrM"
        return f"{_UCSC_PREFIX}{contig}"
    if style == ENSEMBL:
        if contig.startswith(_UCSC_PREFIX):
            core = contig[len(_UCSC_PREFIX) :]
            if core == "M":
                return "MT"
            return core
        return contig
    return contig


def _match_names(keys: Sequence[str], targets: Sequence[str]) -> Dict[str, str]:
    """Map each key to an identical target, else to the target it equals after restyling."""
    target_set = set(targets)
    style = detect_contig_style(targets)
    out: Dict[str, str] = {}
    for k in keys:
        if k in target_set:
            out[k] = k
            continue
        restyled = remap_contig(k, style)
        if restyled in target_set:
            out[k] = restyled
    return out


def build_translation_table(
    primary: Iterable[str],
    secondary: Iterable[str],
) -> ContigTranslationTable:
    """Build a translation table between two contig name sets (e.g. chr1 vs 1).

    Each direction is computed from its own key set, so a name present on only
    one side simply has no entry in the other direction.
    """
    primary_names = list(primary)
    secondary_names = list(secondary)
    p2s = _match_names(primary_names, secondary_names)
    s2p = _match_names(secondary_names, primary_names)

    unmatched = len(primary_names) - len(p2s)
    if unmatched:
        logger.info("%d of %d primary contigs have no secondary counterpart", unmatched, len(primary_names))
    if primary_names and not p2s:
        logger.warning(
            "No contig names could be matched between the two sets "
            "(primary style=%s, secondary style=%s).",
            detect_contig_style(primary_names),
            detect_contig_style(secondary_names),
        )
    return ContigTranslationTable(primary_to_secondary=p2s, secondary_to_primary=s2p)


def translate_contigs(
    contigs: Iterable[ContigInfo],
    table: ContigTranslationTable,
) -> List[ContigInfo]:
    """Rename primary contigs into the secondary scheme, dropping those without a mapping."""
    out: List[ContigInfo] = []
    for c in contigs:
        name = table.lookup_primary_to_secondary(c.name)
        if name is None:
            logger.debug("Dropping contig %s: no secondary name", c.name)
            continue
        out.append(
            ContigInfo(
                name=name,
                description=c.description,
                n_bases=c.n_bases,
                pos_in_fasta=c.pos_in_fasta,
            )
        )
    return out


def _fasta_descriptions(path: Path, names: Sequence[str]) -> Dict[str, str]:
    """Collect FASTA header descriptions (text after the name) for plain-text FASTA files."""
    if path.suffix == ".gz":
        return {}
    wanted = set(names)
    out: Dict[str, str] = {}
    with open(path, "rt", encoding="utf-8") as fh:
        for line in fh:
            if not line.startswith(">"):
                continue
            parts = line[1:].rstrip("\n").split(None, 1)
            if parts and parts[0] in wanted:
                out[parts[0]] = parts[1].strip() if len(parts) > 1 else ""
    return out


def contigs_from_fasta(fasta_path: str | Path, *, with_descriptions: bool = True) -> List[ContigInfo]:
    """Read contig names and lengths from an (indexed) FASTA via pysam.

    pysam creates the ``.fai`` if it is missing and the directory is writable.
    """
    path = Path(fasta_path)
    with pysam.FastaFile(str(path)) as fa:
        names = list(fa.references)
        lengths = list(fa.lengths)

    descriptions: Dict[str, str] = {}
    if with_descriptions:
        descriptions = _fasta_descriptions(path, names)

    return [
        ContigInfo(name=n, description=descriptions.get(n, ""), n_bases=int(ln), pos_in_fasta=i)
        for i, (n, ln) in enumerate(zip(names, lengths))
    ]


def contigs_from_bam(bam_path: str | Path) -> List[ContigInfo]:
    """Contigs declared in the ``@SQ`` lines of a SAM/BAM/CRAM header."""
    with pysam.AlignmentFile(str(bam_path), "r", check_sq=False) as bam:
        names = list(bam.header.references)
        lengths = list(bam.header.lengths)
    return [
        ContigInfo(name=n, n_bases=int(ln), pos_in_fasta=i)
        for i, (n, ln) in enumerate(zip(names, lengths))
    ]


def header_contig_description(rec: pysam.VariantContig) -> str:
    """``Description`` of a VCF ``##contig`` line, unquoted; empty when absent."""
    value = rec.header_record.get("Description")
    return str(value).strip('"') if value else ""


def contigs_from_vcf(vcf_path: str | Path) -> List[ContigInfo]:
    """Contigs declared in the ``##contig`` lines of a VCF header."""
    out: List[ContigInfo] = []
    with pysam.VariantFile(str(vcf_path)) as vcf:
        for i, (name, rec) in enumerate(vcf.header.contigs.items()):
            length: Optional[int] = rec.length
            out.append(
                ContigInfo(
                    name=name,
                    description=header_contig_description(rec),
                    n_bases=int(length or 0),
                    pos_in_fasta=i,
                )
            )
    return out


def contig_names(contigs: Iterable[ContigInfo]) -> List[str]:
    return [c.name for c in contigs]
