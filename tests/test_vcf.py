from pathlib import Path

import pysam
import pytest

from htsopts.contigs import contigs_from_vcf
from htsopts.models import (
    ContigInfo,
    IndexHandlingMode,
    OptionalVariantFieldsToParse,
    VcfFilterInfo,
    VcfReaderOptions,
    VcfWriterOptions,
)
from htsopts.vcf import (
    build_variant_header,
    desired_format_keys,
    iter_calls,
    write_vcf_header,
    writer_options_from_header,
)


def _writer_options(**kw) -> VcfWriterOptions:
    return VcfWriterOptions(
        contigs=(ContigInfo("chr1", n_bases=1000, pos_in_fasta=0), ContigInfo("chr2", n_bases=500, pos_in_fasta=1)),
        sample_names=("S1", "S2"),
        filters=(VcfFilterInfo("LowQual", "Low quality"),),
        **kw,
    )


def test_desired_format_keys():
    assert desired_format_keys(OptionalVariantFieldsToParse()) == ["GT", "GQ", "DP", "AD", "GL"]
    fields = OptionalVariantFieldsToParse(exclude_allele_depth=True, exclude_read_depth=True)
    assert desired_format_keys(fields) == ["GT", "GQ", "GL"]


def test_header_carries_writer_options():
    opts = _writer_options(
        desired_format_entries=OptionalVariantFieldsToParse(exclude_genotype_likelihood=True)
    )
    header = build_variant_header(opts)
    assert list(header.samples) == ["S1", "S2"]
    assert list(header.contigs) == ["chr1", "chr2"]
    assert header.contigs["chr2"].length == 500
    assert "LowQual" in header.filters
    assert set(header.formats.keys()) == {"GT", "GQ", "DP", "AD"}


def test_header_round_trip():
    opts = _writer_options(
        desired_format_entries=OptionalVariantFieldsToParse(exclude_genotype_quality=True)
    )
    assert writer_options_from_header(build_variant_header(opts)) == opts


def test_contig_descriptions_survive_header(tmp_path: Path):
    opts = VcfWriterOptions(
        contigs=(
            ContigInfo("chr1", description="toy chromosome 1, assembled", n_bases=400, pos_in_fasta=0),
            ContigInfo("chr2", n_bases=400, pos_in_fasta=1),
        ),
        sample_names=("S1",),
    )
    assert writer_options_from_header(build_variant_header(opts)) == opts

    out = write_vcf_header(tmp_path / "described.vcf", opts)
    assert [c.description for c in contigs_from_vcf(out)] == ["toy chromosome 1, assembled", ""]


def test_write_indexed_header(tmp_path: Path):
    out = tmp_path / "empty.vcf.gz"
    opts = _writer_options(index_mode=IndexHandlingMode.INDEX_BASED_ON_FILENAME)
    write_vcf_header(out, opts)
    assert Path(str(out) + ".tbi").exists()
    with pysam.VariantFile(str(out)) as vcf:
        assert list(vcf.header.samples) == ["S1", "S2"]
        assert list(vcf) == []


def test_indexed_output_must_be_bgzipped(tmp_path: Path):
    opts = _writer_options(index_mode=IndexHandlingMode.INDEX_BASED_ON_FILENAME)
    with pytest.raises(ValueError):
        write_vcf_header(tmp_path / "plain.vcf", opts)


def test_iter_calls_respects_desired_fields(toy):
    opts = VcfReaderOptions(
        desired_format_entries=OptionalVariantFieldsToParse(exclude_allele_depth=True)
    )
    calls = list(iter_calls(str(toy["vcf"]), opts))
    assert len(calls) == 2
    first = calls[0]
    assert first.contig == "chr1" and first.pos == 100
    assert set(first.calls) == {"S1", "S2"}
    assert first.calls["S1"]["GT"] == (0, 1)
    assert first.calls["S1"]["DP"] == 30
    assert "AD" not in first.calls["S1"]


def test_iter_calls_region(toy):
    opts = VcfReaderOptions(index_mode=IndexHandlingMode.INDEX_BASED_ON_FILENAME)
    calls = list(iter_calls(str(toy["vcf"]), opts, region="chr1:150-250"))
    assert [c.pos for c in calls] == [200]
    with pytest.raises(ValueError):
        list(iter_calls(str(toy["vcf"]), VcfReaderOptions(), region="chr1:150-250"))
