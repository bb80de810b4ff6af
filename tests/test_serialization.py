import json
from pathlib import Path

import pytest

from htsopts.errors import InvalidConfiguration
from htsopts.models import (
    AuxFieldHandling,
    ContigInfo,
    ContigTranslationTable,
    IndexHandlingMode,
    MinBaseQualityMode,
    OptionalVariantFieldsToParse,
    ReadRequirements,
    RuntimeHostInfo,
    RuntimeMetrics,
    RuntimeTask,
    SamReaderOptions,
    VcfFilterInfo,
    VcfReaderOptions,
    VcfWriterOptions,
)
from htsopts.serialization import dumps, from_dict, load_options, loads, save_options, to_dict


def _writer_options() -> VcfWriterOptions:
    return VcfWriterOptions(
        index_mode=IndexHandlingMode.INDEX_BASED_ON_FILENAME,
        contigs=(
            ContigInfo("chr1", "first", 248956422, 0),
            ContigInfo("chr2", "", 242193529, 1),
            ContigInfo("chrM", "mito", 16569, 24),
        ),
        sample_names=("NA12878", "NA12891"),
        filters=(VcfFilterInfo("LowQual", "Low quality"), VcfFilterInfo("RefCall", "")),
        desired_format_entries=OptionalVariantFieldsToParse(
            exclude_genotype_likelihood=True, exclude_allele_depth=True
        ),
    )


def test_vcf_writer_options_round_trip():
    opts = _writer_options()
    assert from_dict(VcfWriterOptions, to_dict(opts)) == opts
    assert loads(VcfWriterOptions, dumps(opts)) == opts


def test_enums_are_encoded_by_name():
    data = to_dict(_writer_options())
    assert data["index_mode"] == "INDEX_BASED_ON_FILENAME"
    assert data["contigs"][2] == {
        "name": "chrM",
        "description": "mito",
        "n_bases": 16569,
        "pos_in_fasta": 24,
    }
    json.dumps(data)


@pytest.mark.parametrize(
    "record",
    [
        SamReaderOptions(
            read_requirements=ReadRequirements(
                keep_unaligned=True,
                min_mapping_quality=10,
                min_base_quality=20,
                min_base_quality_mode=MinBaseQualityMode.ENFORCED_BY_CLIENT,
            ),
            index_mode=IndexHandlingMode.INDEX_BASED_ON_FILENAME,
            aux_field_handling=AuxFieldHandling.PARSE_ALL_AUX_FIELDS,
            hts_block_size=128 * 1024 * 1024,
            downsample_fraction=0.25,
            random_seed=-17,
        ),
        VcfReaderOptions(desired_format_entries=OptionalVariantFieldsToParse(exclude_genotype=True)),
        ContigTranslationTable({"chr1": "1", "chrM": "MT"}, {"1": "chr1"}),
        RuntimeMetrics(
            host_info=RuntimeHostInfo("host", "gce", "n1-standard-1", 8, 2200.0, 32000),
            task_info=RuntimeTask("nightly", "with_gpu", "make_examples", "1/3"),
            executable_name="/opt/bin/tool",
            software_build_id="1.2.3",
            command_line=("tool", "--x"),
            wall_time_seconds=12.5,
            cpu_user_time_seconds=10.0,
            cpu_system_time_seconds=0.5,
            memory_peak_rss_mb=512,
            killed_by_signal=0,
            exit_code=1,
        ),
    ],
)
def test_round_trip(record):
    assert from_dict(type(record), to_dict(record)) == record


def test_missing_fields_take_defaults():
    opts = from_dict(SamReaderOptions, {"downsample_fraction": 0.5})
    assert opts.read_requirements == ReadRequirements()
    assert opts.index_mode is IndexHandlingMode.DONT_USE_INDEX
    assert from_dict(VcfWriterOptions, {}) == VcfWriterOptions()


def test_enums_decode_from_ints():
    opts = from_dict(SamReaderOptions, {"index_mode": 1, "aux_field_handling": 1})
    assert opts.index_mode is IndexHandlingMode.INDEX_BASED_ON_FILENAME
    assert opts.aux_field_handling is AuxFieldHandling.SKIP_AUX_FIELDS


def test_unknown_field_is_rejected():
    with pytest.raises(InvalidConfiguration):
        from_dict(SamReaderOptions, {"downsample": 0.5})
    with pytest.raises(InvalidConfiguration):
        from_dict(SamReaderOptions, {"read_requirements": {"keep_dups": True}})


def test_decoding_validates():
    with pytest.raises(InvalidConfiguration):
        from_dict(SamReaderOptions, {"downsample_fraction": 1.5})
    with pytest.raises(InvalidConfiguration):
        from_dict(VcfWriterOptions, {"contigs": {"name": "chr1"}})
    with pytest.raises(InvalidConfiguration):
        loads(SamReaderOptions, "{not json")


def test_save_and_load_options(tmp_path: Path):
    path = tmp_path / "writer.json"
    opts = _writer_options()
    save_options(path, opts)
    assert load_options(path, VcfWriterOptions) == opts
