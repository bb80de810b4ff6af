from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Tuple, Type, TypeVar

from .errors import InvalidConfiguration

E = TypeVar("E", bound=IntEnum)

INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1


class IndexHandlingMode(IntEnum):
    """Whether a reader loads (or a writer produces) an index sidecar.

    DONT_USE_INDEX: reader does not load an index, so region queries do not
    work; writer does not write one.
    INDEX_BASED_ON_FILENAME: the index path is derived from the data file path.
    """

    DONT_USE_INDEX = 0
    INDEX_BASED_ON_FILENAME = 1


class MinBaseQualityMode(IntEnum):
    """How ``ReadRequirements.min_base_quality`` is enforced.

    UNSPECIFIED: no guarantee; readers ignore the threshold.
    ENFORCED_BY_CLIENT: the reader does not enforce it, the caller does.
    """

    UNSPECIFIED = 0
    ENFORCED_BY_CLIENT = 1


class AuxFieldHandling(IntEnum):
    UNSPECIFIED = 0
    SKIP_AUX_FIELDS = 1
    PARSE_ALL_AUX_FIELDS = 2


def coerce_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """Normalise an enum member, its integer value or its name to ``enum_cls``."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, bool):
        raise InvalidConfiguration(
            f"{field_name}: expected {enum_cls.__name__}, got bool {value!r}", field=field_name
        )
    if isinstance(value, int):
        try:
            return enum_cls(value)
        except ValueError:
            pass
    elif isinstance(value, str):
        try:
            return enum_cls[value]
        except KeyError:
            pass
    allowed = ", ".join(m.name for m in enum_cls)
    raise InvalidConfiguration(
        f"{field_name}: {value!r} is not a valid {enum_cls.__name__} (allowed: {allowed})",
        field=field_name,
    )


def _check_int(value: Any, field_name: str, lo: int, hi: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfiguration(
            f"{field_name}: expected an integer, got {value!r}", field=field_name
        )
    if not lo <= value <= hi:
        raise InvalidConfiguration(
            f"{field_name}: {value} is outside the range [{lo}, {hi}]", field=field_name
        )
    return int(value)


def _check_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfiguration(
            f"{field_name}: expected a number, got {value!r}", field=field_name
        )
    return float(value)


def _check_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise InvalidConfiguration(f"{field_name}: expected a string, got {value!r}", field=field_name)
    return value


def _str_tuple(value: Any, field_name: str) -> Tuple[str, ...]:
    if isinstance(value, str):
        raise InvalidConfiguration(
            f"{field_name}: expected a list of strings, got the string {value!r}", field=field_name
        )
    return tuple(_check_str(v, field_name) for v in value)


def _check_bools(obj: Any, names: Iterable[str]) -> None:
    for name in names:
        value = getattr(obj, name)
        if not isinstance(value, bool):
            raise InvalidConfiguration(f"{name}: expected a bool, got {value!r}", field=name)


def _set(obj: Any, name: str, value: Any) -> None:
    # frozen dataclasses normalise their own fields in __post_init__
    object.__setattr__(obj, name, value)


# ---------------------------------------------------------------------------
# Contigs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContigInfo:
    """One reference sequence (e.g. a chromosome) of a FASTA-derived genome.

    Attributes
    ----------
    name:
        First whitespace-free token after ``>`` in the FASTA header, e.g. ``chr1``.
    description:
        Remainder of the FASTA header line, when the reader captured it.
    n_bases:
        Contig length in base pairs.
    pos_in_fasta:
        0-based position of the contig in the source FASTA.
    """

    name: str
    description: str = ""
    n_bases: int = 0
    pos_in_fasta: int = 0

    def __post_init__(self) -> None:
        _check_str(self.name, "name")
        if not self.name:
            raise InvalidConfiguration("name: contig name must not be empty", field="name")
        _check_str(self.description, "description")
        _check_int(self.n_bases, "n_bases", 0, INT64_MAX)
        _check_int(self.pos_in_fasta, "pos_in_fasta", 0, INT32_MAX)


def check_contig_list(contigs: Iterable[ContigInfo]) -> Tuple[ContigInfo, ...]:
    """Validate a contig list: unique names, strictly increasing ``pos_in_fasta``."""
    out = tuple(contigs)
    seen: set[str] = set()
    last_pos: Optional[int] = None
    for c in out:
        if not isinstance(c, ContigInfo):
            raise InvalidConfiguration(f"contigs: expected ContigInfo, got {c!r}", field="contigs")
        if c.name in seen:
            raise InvalidConfiguration(f"contigs: duplicate contig name {c.name!r}", field="contigs")
        if last_pos is not None and c.pos_in_fasta <= last_pos:
            raise InvalidConfiguration(
                f"contigs: pos_in_fasta must strictly increase ({c.name!r} has "
                f"{c.pos_in_fasta} after {last_pos})",
                field="contigs",
            )
        seen.add(c.name)
        last_pos = c.pos_in_fasta
    return out


@dataclass(frozen=True)
class ContigTranslationTable:
    """Contig name translation between a primary and a secondary naming scheme.

    The primary set is usually the reference, the secondary set the data aligned
    to it. The two directions are independent mappings: a name missing from one
    side means there is no corresponding contig, and a primary->secondary entry
    does not imply the reverse entry.
    """

    primary_to_secondary: Mapping[str, str] = field(default_factory=dict)
    secondary_to_primary: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("primary_to_secondary", "secondary_to_primary"):
            mapping = getattr(self, name)
            if not isinstance(mapping, Mapping):
                raise InvalidConfiguration(f"{name}: expected a mapping, got {mapping!r}", field=name)
            copied = {}
            for k, v in mapping.items():
                copied[_check_str(k, name)] = _check_str(v, name)
            _set(self, name, MappingProxyType(copied))

    def __hash__(self) -> int:
        return hash(
            (
                tuple(sorted(self.primary_to_secondary.items())),
                tuple(sorted(self.secondary_to_primary.items())),
            )
        )

    @classmethod
    def from_pairs(
        cls,
        primary_to_secondary: Iterable[Tuple[str, str]] = (),
        secondary_to_primary: Iterable[Tuple[str, str]] = (),
    ) -> "ContigTranslationTable":
        """Bulk-load both directions from ``(key, value)`` pairs; duplicate keys are an error."""
        maps = []
        for name, pairs in (
            ("primary_to_secondary", primary_to_secondary),
            ("secondary_to_primary", secondary_to_primary),
        ):
            m: dict[str, str] = {}
            for k, v in pairs:
                if k in m:
                    raise InvalidConfiguration(f"{name}: duplicate key {k!r}", field=name)
                m[k] = v
            maps.append(m)
        return cls(primary_to_secondary=maps[0], secondary_to_primary=maps[1])

    def lookup_primary_to_secondary(self, name: str) -> Optional[str]:
        return self.primary_to_secondary.get(name)

    def lookup_secondary_to_primary(self, name: str) -> Optional[str]:
        return self.secondary_to_primary.get(name)


# ---------------------------------------------------------------------------
# SAM/BAM
# ---------------------------------------------------------------------------

KEEP_FLAGS = (
    "keep_duplicates",
    "keep_failed_vendor_quality_checks",
    "keep_secondary_alignments",
    "keep_supplementary_alignments",
    "keep_unaligned",
    "keep_improperly_placed",
)


@dataclass(frozen=True)
class ReadRequirements:
    """Requirements a read must satisfy before a reader returns it.

    Every ``keep_*`` flag defaults to False, i.e. such reads are dropped.
    ``min_mapping_quality`` of 0 keeps reads of any MAPQ and only applies to
    aligned reads. ``min_base_quality`` is interpreted according to
    ``min_base_quality_mode``; readers never enforce it themselves.
    """

    keep_duplicates: bool = False
    keep_failed_vendor_quality_checks: bool = False
    keep_secondary_alignments: bool = False
    keep_supplementary_alignments: bool = False
    keep_unaligned: bool = False
    keep_improperly_placed: bool = False
    min_mapping_quality: int = 0
    min_base_quality: int = 0
    min_base_quality_mode: MinBaseQualityMode = MinBaseQualityMode.UNSPECIFIED

    def __post_init__(self) -> None:
        _check_bools(self, KEEP_FLAGS)
        _check_int(self.min_mapping_quality, "min_mapping_quality", 0, INT32_MAX)
        _check_int(self.min_base_quality, "min_base_quality", 0, INT32_MAX)
        _set(
            self,
            "min_base_quality_mode",
            coerce_enum(MinBaseQualityMode, self.min_base_quality_mode, "min_base_quality_mode"),
        )


@dataclass(frozen=True)
class SamReaderOptions:
    """Options for a SAM/BAM reader session.

    Attributes
    ----------
    read_requirements:
        Filter applied to every candidate read.
    index_mode:
        Whether an index sidecar is loaded (required for region queries).
    aux_field_handling:
        Whether aux tags are kept on returned reads.
    hts_block_size:
        htslib block size; values <= 0 select the library default.
    downsample_fraction:
        0.0 disables downsampling. Otherwise the probability in (0.0, 1.0]
        that a read is kept.
    random_seed:
        Seed for the downsampling generator.
    """

    read_requirements: ReadRequirements = field(default_factory=ReadRequirements)
    index_mode: IndexHandlingMode = IndexHandlingMode.DONT_USE_INDEX
    aux_field_handling: AuxFieldHandling = AuxFieldHandling.UNSPECIFIED
    hts_block_size: int = 0
    downsample_fraction: float = 0.0
    random_seed: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.read_requirements, ReadRequirements):
            raise InvalidConfiguration(
                f"read_requirements: expected ReadRequirements, got {self.read_requirements!r}",
                field="read_requirements",
            )
        _set(self, "index_mode", coerce_enum(IndexHandlingMode, self.index_mode, "index_mode"))
        _set(
            self,
            "aux_field_handling",
            coerce_enum(AuxFieldHandling, self.aux_field_handling, "aux_field_handling"),
        )
        _check_int(self.hts_block_size, "hts_block_size", INT64_MIN, INT64_MAX)
        _check_int(self.random_seed, "random_seed", INT64_MIN, INT64_MAX)
        _set(self, "downsample_fraction", check_downsample_fraction(self.downsample_fraction))


def check_downsample_fraction(value: Any) -> float:
    """Return ``value`` as float if it is 0.0 or lies in (0.0, 1.0]."""
    fraction = _check_float(value, "downsample_fraction")
    if fraction == 0.0:
        return 0.0
    if math.isnan(fraction) or not 0.0 < fraction <= 1.0:
        raise InvalidConfiguration(
            f"downsample_fraction: {value!r} must be 0.0 (disabled) or within (0.0, 1.0]",
            field="downsample_fraction",
        )
    return fraction


# ---------------------------------------------------------------------------
# VCF
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VcfFilterInfo:
    """A VCF ``##FILTER`` header line."""

    id: str
    description: str = ""

    def __post_init__(self) -> None:
        _check_str(self.id, "id")
        _check_str(self.description, "description")
        if not self.id:
            raise InvalidConfiguration("id: filter id must not be empty", field="id")


@dataclass(frozen=True)
class VcfFormatInfo:
    """A VCF ``##FORMAT`` header line."""

    id: str
    number: str = "."
    type: str = "String"
    description: str = ""

    def __post_init__(self) -> None:
        for name in ("id", "number", "type", "description"):
            _check_str(getattr(self, name), name)


_EXCLUDE_FLAGS = (
    "exclude_genotype",
    "exclude_genotype_likelihood",
    "exclude_genotype_quality",
    "exclude_allele_depth",
    "exclude_read_depth",
)


@dataclass(frozen=True)
class OptionalVariantFieldsToParse:
    """Per-call FORMAT fields a VCF reader parses (or a writer emits).

    The flags are inverted so the all-False default means "everything".
    """

    exclude_genotype: bool = False
    exclude_genotype_likelihood: bool = False
    exclude_genotype_quality: bool = False
    exclude_allele_depth: bool = False  # AD
    exclude_read_depth: bool = False  # DP

    def __post_init__(self) -> None:
        _check_bools(self, _EXCLUDE_FLAGS)


@dataclass(frozen=True)
class VcfReaderOptions:
    index_mode: IndexHandlingMode = IndexHandlingMode.DONT_USE_INDEX
    desired_format_entries: OptionalVariantFieldsToParse = field(
        default_factory=OptionalVariantFieldsToParse
    )

    def __post_init__(self) -> None:
        _set(self, "index_mode", coerce_enum(IndexHandlingMode, self.index_mode, "index_mode"))
        if not isinstance(self.desired_format_entries, OptionalVariantFieldsToParse):
            raise InvalidConfiguration(
                "desired_format_entries: expected OptionalVariantFieldsToParse",
                field="desired_format_entries",
            )


@dataclass(frozen=True)
class VcfWriterOptions:
    """Options for a VCF writer: header content plus FORMAT fields to emit."""

    index_mode: IndexHandlingMode = IndexHandlingMode.DONT_USE_INDEX
    contigs: Tuple[ContigInfo, ...] = ()
    sample_names: Tuple[str, ...] = ()
    filters: Tuple[VcfFilterInfo, ...] = ()
    desired_format_entries: OptionalVariantFieldsToParse = field(
        default_factory=OptionalVariantFieldsToParse
    )

    def __post_init__(self) -> None:
        _set(self, "index_mode", coerce_enum(IndexHandlingMode, self.index_mode, "index_mode"))
        _set(self, "contigs", check_contig_list(self.contigs))

        samples = _str_tuple(self.sample_names, "sample_names")
        if len(set(samples)) != len(samples):
            raise InvalidConfiguration("sample_names: names must be unique", field="sample_names")
        _set(self, "sample_names", samples)

        filters = tuple(self.filters)
        for f in filters:
            if not isinstance(f, VcfFilterInfo):
                raise InvalidConfiguration(f"filters: expected VcfFilterInfo, got {f!r}", field="filters")
        if len({f.id for f in filters}) != len(filters):
            raise InvalidConfiguration("filters: filter ids must be unique", field="filters")
        _set(self, "filters", filters)

        if not isinstance(self.desired_format_entries, OptionalVariantFieldsToParse):
            raise InvalidConfiguration(
                "desired_format_entries: expected OptionalVariantFieldsToParse",
                field="desired_format_entries",
            )


# ---------------------------------------------------------------------------
# Runtime telemetry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuntimeTask:
    """What a process is doing, e.g. experiment ``nightly`` / job ``make_examples`` / task ``1/3``."""

    experiment_name: str = ""
    condition_name: str = ""
    job_name: str = ""
    task_name: str = ""

    def __post_init__(self) -> None:
        for name in ("experiment_name", "condition_name", "job_name", "task_name"):
            _check_str(getattr(self, name), name)


@dataclass(frozen=True)
class RuntimeHostInfo:
    host_name: str = ""
    compute_provider: str = ""  # e.g. "gce"
    instance_type: str = ""  # e.g. "n1-standard-1"
    physical_core_count: int = 0
    cpu_frequency_mhz: float = 0.0
    total_memory_mb: int = 0

    def __post_init__(self) -> None:
        for name in ("host_name", "compute_provider", "instance_type"):
            _check_str(getattr(self, name), name)
        _check_int(self.physical_core_count, "physical_core_count", 0, INT32_MAX)
        _check_int(self.total_memory_mb, "total_memory_mb", 0, INT32_MAX)
        _set(self, "cpu_frequency_mhz", _check_float(self.cpu_frequency_mhz, "cpu_frequency_mhz"))


@dataclass(frozen=True)
class RuntimeMetrics:
    """Process-level runtime metrics for one command execution.

    ``killed_by_signal`` is 0 unless a signal terminated the process, in which
    case ``exit_code`` is undefined.
    """

    host_info: RuntimeHostInfo = field(default_factory=RuntimeHostInfo)
    task_info: RuntimeTask = field(default_factory=RuntimeTask)
    executable_name: str = ""
    software_build_id: str = ""
    command_line: Tuple[str, ...] = ()
    wall_time_seconds: float = 0.0
    cpu_user_time_seconds: float = 0.0
    cpu_system_time_seconds: float = 0.0
    memory_peak_rss_mb: int = 0
    killed_by_signal: int = 0
    exit_code: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.host_info, RuntimeHostInfo):
            raise InvalidConfiguration("host_info: expected RuntimeHostInfo", field="host_info")
        if not isinstance(self.task_info, RuntimeTask):
            raise InvalidConfiguration("task_info: expected RuntimeTask", field="task_info")
        _check_str(self.executable_name, "executable_name")
        _check_str(self.software_build_id, "software_build_id")
        _set(self, "command_line", _str_tuple(self.command_line, "command_line"))
        for name in ("wall_time_seconds", "cpu_user_time_seconds", "cpu_system_time_seconds"):
            _set(self, name, _check_float(getattr(self, name), name))
        _check_int(self.memory_peak_rss_mb, "memory_peak_rss_mb", 0, INT32_MAX)
        _check_int(self.killed_by_signal, "killed_by_signal", INT32_MIN, INT32_MAX)
        _check_int(self.exit_code, "exit_code", INT32_MIN, INT32_MAX)
