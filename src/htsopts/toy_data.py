from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List

import pysam

from .utils import ensure_outdir, write_json

# SAM flag bits
FPAIRED = 0x1
FPROPER_PAIR = 0x2
FUNMAP = 0x4
FMUNMAP = 0x8
FSECONDARY = 0x100
FQCFAIL = 0x200
FDUP = 0x400
FSUPPLEMENTARY = 0x800

TOY_CONTIGS = (("chr1", "toy chromosome 1"), ("chr2", "toy chromosome 2"))
TOY_CONTIG_LENGTH = 400
TOY_BULK_READS = 200
READ_LENGTH = 50


def _write_fasta(path: Path, contigs: Dict[str, str], descriptions: Dict[str, str]) -> None:
    lines: List[str] = []
    for name, seq in contigs.items():
        desc = descriptions.get(name)
        lines.append(f">{name} {desc}" if desc else f">{name}")
        for i in range(0, len(seq), 60):
            lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def make_read(
    name: str,
    *,
    reference_id: int = 0,
    start0: int = 0,
    seq: str = "A" * READ_LENGTH,
    flag: int = 0,
    mapq: int = 60,
    next_reference_id: int = -1,
    next_start0: int = -1,
) -> pysam.AlignedSegment:
    """Build an AlignedSegment; ``flag & FUNMAP`` produces an unplaced, unaligned read."""
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = flag
    if flag & FUNMAP:
        a.reference_id = -1
        a.reference_start = -1
        a.mapping_quality = 0
    else:
        a.reference_id = reference_id
        a.reference_start = start0
        a.mapping_quality = mapq
        a.cigartuples = [(0, len(seq))]  # M
    a.next_reference_id = next_reference_id
    a.next_reference_start = next_start0
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    a.set_tag("RG", "toy", value_type="Z")
    return a


def make_toy_data(*, outdir: str | Path, n_bulk_reads: int = TOY_BULK_READS) -> Dict[str, object]:
    """Create a tiny reference, BAM and VCF for demos/tests.

    The BAM holds ``n_bulk_reads`` plain reads plus one read for each filter
    category (duplicate, QC fail, secondary, supplementary, low MAPQ,
    improperly placed, unaligned) and one properly paired read.

    Outputs:
    - toy_ref.fa (+ .fai)
    - toy.bam (+ .bai)
    - toy.vcf.gz (+ .tbi)
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(7)

    seqs = {
        name: "".join(rng.choice("ACGT") for _ in range(TOY_CONTIG_LENGTH))
        for name, _desc in TOY_CONTIGS
    }
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, seqs, dict(TOY_CONTIGS))
    pysam.faidx(str(ref_fa))

    chr1 = seqs["chr1"]

    def ref_read(name: str, start0: int, **kw: object) -> pysam.AlignedSegment:
        return make_read(name, start0=start0, seq=chr1[start0 : start0 + READ_LENGTH], **kw)  # type: ignore[arg-type]

    reads: List[pysam.AlignedSegment] = []
    for i in range(n_bulk_reads):
        reads.append(ref_read(f"bulk_{i}", (i * 7) % (TOY_CONTIG_LENGTH - READ_LENGTH)))

    reads.extend(
        [
            ref_read("dup", 10, flag=FDUP),
            ref_read("qcfail", 20, flag=FQCFAIL),
            ref_read("secondary", 30, flag=FSECONDARY),
            ref_read("supplementary", 40, flag=FSUPPLEMENTARY),
            ref_read("low_mapq", 50, mapq=5),
            ref_read("improper", 60, flag=FPAIRED, next_reference_id=1, next_start0=100),
            ref_read(
                "proper",
                70,
                flag=FPAIRED | FPROPER_PAIR,
                next_reference_id=0,
                next_start0=200,
            ),
        ]
    )
    reads.sort(key=lambda r: r.reference_start)
    reads.append(make_read("unaligned", flag=FUNMAP))

    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": name, "LN": TOY_CONTIG_LENGTH} for name, _desc in TOY_CONTIGS],
        "RG": [{"ID": "toy", "SM": "TOY"}],
    }

    bam_path = outdir_p / "toy.bam"
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)
    pysam.index(str(bam_path))

    # VCF
    vcf_path = outdir_p / "toy.vcf"
    vheader = pysam.VariantHeader()
    vheader.add_meta("fileformat", "VCFv4.2")
    for name, _desc in TOY_CONTIGS:
        vheader.contigs.add(name, length=TOY_CONTIG_LENGTH)
    vheader.filters.add("LowQual", None, None, "Low quality")
    vheader.formats.add("GT", 1, "String", "Genotype")
    vheader.formats.add("GQ", 1, "Integer", "Conditional genotype quality")
    vheader.formats.add("DP", 1, "Integer", "Read depth")
    vheader.formats.add("AD", "R", "Integer", "Read depth for each allele")
    for sample in ("S1", "S2"):
        vheader.add_sample(sample)

    with pysam.VariantFile(str(vcf_path), "w", header=vheader) as vcf:
        for pos0 in (99, 199):
            ref_base = chr1[pos0]
            alt_base = "A" if ref_base != "A" else "C"
            rec = vcf.new_record(
                contig="chr1",
                start=pos0,
                stop=pos0 + 1,
                alleles=(ref_base, alt_base),
                qual=50,
                filter="PASS",
            )
            for sample in ("S1", "S2"):
                rec.samples[sample]["GT"] = (0, 1)
                rec.samples[sample]["GQ"] = 40
                rec.samples[sample]["DP"] = 30
                rec.samples[sample]["AD"] = (15, 15)
            vcf.write(rec)

    vcf_gz = outdir_p / "toy.vcf.gz"
    pysam.tabix_compress(str(vcf_path), str(vcf_gz), force=True)
    pysam.tabix_index(str(vcf_gz), preset="vcf", force=True)

    summary: Dict[str, object] = {
        "ref_fa": str(ref_fa),
        "bam": str(bam_path),
        "vcf": str(vcf_gz),
        "n_reads": len(reads),
        "outdir": str(outdir_p),
    }
    write_json(outdir_p / "toy_summary.json", summary)
    return summary
