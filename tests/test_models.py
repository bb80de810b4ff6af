import dataclasses

import pytest

from htsopts.errors import InvalidConfiguration
from htsopts.models import (
    AuxFieldHandling,
    ContigInfo,
    ContigTranslationTable,
    IndexHandlingMode,
    MinBaseQualityMode,
    ReadRequirements,
    RuntimeHostInfo,
    RuntimeMetrics,
    SamReaderOptions,
    VcfFilterInfo,
    VcfReaderOptions,
    VcfWriterOptions,
)


def test_invalid_configuration_is_a_value_error():
    assert issubclass(InvalidConfiguration, ValueError)


def test_downsample_fraction_range():
    assert SamReaderOptions(downsample_fraction=0.3).downsample_fraction == pytest.approx(0.3)
    assert SamReaderOptions(downsample_fraction=1).downsample_fraction == 1.0
    with pytest.raises(InvalidConfiguration) as exc:
        SamReaderOptions(downsample_fraction=1.5)
    assert exc.value.field == "downsample_fraction"
    with pytest.raises(InvalidConfiguration):
        SamReaderOptions(downsample_fraction=-0.2)


def test_sam_reader_defaults():
    opts = SamReaderOptions()
    assert opts.read_requirements == ReadRequirements()
    assert opts.index_mode is IndexHandlingMode.DONT_USE_INDEX
    assert opts.aux_field_handling is AuxFieldHandling.UNSPECIFIED
    assert opts.hts_block_size == 0
    assert opts.downsample_fraction == 0.0


@pytest.mark.parametrize("field", ["min_mapping_quality", "min_base_quality"])
def test_negative_quality_thresholds(field):
    with pytest.raises(InvalidConfiguration):
        ReadRequirements(**{field: -1})


def test_int32_overflow_is_rejected():
    with pytest.raises(InvalidConfiguration):
        ReadRequirements(min_mapping_quality=2**31)
    with pytest.raises(InvalidConfiguration):
        SamReaderOptions(random_seed=2**63)


def test_keep_flags_must_be_bools():
    with pytest.raises(InvalidConfiguration):
        ReadRequirements(keep_duplicates="yes")


def test_enum_coercion():
    assert SamReaderOptions(index_mode=1).index_mode is IndexHandlingMode.INDEX_BASED_ON_FILENAME
    assert (
        SamReaderOptions(aux_field_handling="SKIP_AUX_FIELDS").aux_field_handling
        is AuxFieldHandling.SKIP_AUX_FIELDS
    )
    req = ReadRequirements(min_base_quality_mode="ENFORCED_BY_CLIENT")
    assert req.min_base_quality_mode is MinBaseQualityMode.ENFORCED_BY_CLIENT


@pytest.mark.parametrize("value", [7, -1, "BOGUS", True, 1.0])
def test_enum_out_of_set(value):
    with pytest.raises(InvalidConfiguration):
        VcfReaderOptions(index_mode=value)


def test_records_are_frozen():
    req = ReadRequirements()
    with pytest.raises(dataclasses.FrozenInstanceError):
        req.keep_duplicates = True  # type: ignore[misc]


def test_contig_info_validation():
    ContigInfo("chr1", "", 248956422, 0)
    with pytest.raises(InvalidConfiguration):
        ContigInfo("", n_bases=1)
    with pytest.raises(InvalidConfiguration):
        ContigInfo("chr1", n_bases=-1)
    with pytest.raises(InvalidConfiguration):
        ContigInfo("chr1", pos_in_fasta=-1)


def test_writer_contig_list_invariants():
    c1 = ContigInfo("chr1", n_bases=10, pos_in_fasta=0)
    c2 = ContigInfo("chr2", n_bases=10, pos_in_fasta=1)
    opts = VcfWriterOptions(contigs=[c1, c2], sample_names=["a", "b"])
    assert opts.contigs == (c1, c2)
    assert opts.sample_names == ("a", "b")

    with pytest.raises(InvalidConfiguration):
        VcfWriterOptions(contigs=[c1, ContigInfo("chr1", pos_in_fasta=3)])
    with pytest.raises(InvalidConfiguration):
        VcfWriterOptions(contigs=[c2, c1])


def test_writer_samples_and_filters_are_unique():
    with pytest.raises(InvalidConfiguration):
        VcfWriterOptions(sample_names=["a", "a"])
    with pytest.raises(InvalidConfiguration):
        VcfWriterOptions(filters=[VcfFilterInfo("q10"), VcfFilterInfo("q10", "again")])
    with pytest.raises(InvalidConfiguration):
        VcfWriterOptions(sample_names="abc")


def test_translation_table_lookups_are_directional():
    table = ContigTranslationTable(
        primary_to_secondary={"chr1": "1"},
        secondary_to_primary={"chrX": "X", "1": "chr1"},
    )
    assert table.lookup_primary_to_secondary("chr1") == "1"
    assert table.lookup_primary_to_secondary("chrX") is None
    assert table.lookup_secondary_to_primary("chrX") == "X"
    assert table.lookup_secondary_to_primary("2") is None


def test_translation_table_is_read_only():
    source = {"chr1": "1"}
    table = ContigTranslationTable(primary_to_secondary=source)
    source["chr2"] = "2"
    assert table.lookup_primary_to_secondary("chr2") is None
    with pytest.raises(TypeError):
        table.primary_to_secondary["chr3"] = "3"  # type: ignore[index]


def test_translation_table_from_pairs():
    table = ContigTranslationTable.from_pairs([("chr1", "1"), ("chrM", "MT")], [("1", "chr1")])
    assert table.lookup_primary_to_secondary("chrM") == "MT"
    assert table.lookup_secondary_to_primary("MT") is None
    with pytest.raises(InvalidConfiguration):
        ContigTranslationTable.from_pairs([("chr1", "1"), ("chr1", "01")])


def test_translation_table_equality():
    a = ContigTranslationTable({"chr1": "1"}, {"1": "chr1"})
    b = ContigTranslationTable.from_pairs([("chr1", "1")], [("1", "chr1")])
    assert a == b


def test_translation_table_is_hashable():
    a = ContigTranslationTable({"chr1": "1", "chr2": "2"}, {"1": "chr1"})
    b = ContigTranslationTable({"chr2": "2", "chr1": "1"}, {"1": "chr1"})
    assert hash(a) == hash(b)
    assert len({a, b, ContigTranslationTable()}) == 2


def test_runtime_records():
    metrics = RuntimeMetrics(
        host_info=RuntimeHostInfo(host_name="h", physical_core_count=4, cpu_frequency_mhz=2400),
        command_line=["prog", "--flag"],
        wall_time_seconds=1,
    )
    assert metrics.command_line == ("prog", "--flag")
    assert isinstance(metrics.wall_time_seconds, float)
    assert metrics.host_info.cpu_frequency_mhz == 2400.0
    with pytest.raises(InvalidConfiguration):
        RuntimeMetrics(memory_peak_rss_mb=-1)
