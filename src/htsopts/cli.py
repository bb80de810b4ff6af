from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .contigs import (
    build_translation_table,
    contig_names,
    contigs_from_bam,
    contigs_from_fasta,
    contigs_from_vcf,
    translate_contigs,
)
from .errors import InvalidConfiguration
from .filtering import client_min_base_quality
from .models import (
    KEEP_FLAGS,
    AuxFieldHandling,
    ContigInfo,
    IndexHandlingMode,
    MinBaseQualityMode,
    RuntimeTask,
    SamReaderOptions,
    VcfReaderOptions,
    VcfWriterOptions,
)
from .plotting import plot_read_outcomes
from .report import render_report
from .sam import filter_bam
from .serialization import dumps, from_dict, load_options, to_dict
from .telemetry import RuntimeMetricsCollector, write_runtime_metrics
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json
from .vcf import OPTIONAL_FORMAT_FIELDS, write_vcf_header

_OPTION_KINDS = {
    "sam": SamReaderOptions,
    "vcf-reader": VcfReaderOptions,
    "vcf-writer": VcfWriterOptions,
}


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, InvalidConfiguration):
        msg = f"Invalid configuration: {err}"
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None and log_path.exists():
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _contigs_from_path(path: str) -> List[ContigInfo]:
    name = Path(path).name
    if name.endswith((".bam", ".sam", ".cram")):
        return contigs_from_bam(path)
    if name.endswith((".vcf", ".vcf.gz", ".bcf")):
        return contigs_from_vcf(path)
    return contigs_from_fasta(path)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="htsopts",
        description=(
            "htsopts: reader/writer options for SAM/BAM and VCF files. "
            "Filter and downsample reads, translate contig names, and build VCF headers."
        ),
    )
    p.add_argument("--version", action="version", version=f"htsopts {__version__}")
    p.add_argument("-v", "--verbose", action="count", default=0, help="-v for INFO, -vv for DEBUG.")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference, BAM, and VCF for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # options
    # -----------------
    o = sub.add_parser(
        "options",
        help="Validate an options JSON file (or print defaults) and echo it normalised.",
    )
    o.add_argument("--kind", choices=sorted(_OPTION_KINDS), required=True, help="Options record type.")
    o.add_argument("--options", type=_path_exists, help="Options JSON file.")

    # -----------------
    # filter
    # -----------------
    f = sub.add_parser(
        "filter",
        help="Apply read requirements and downsampling to a SAM/BAM.",
    )
    f.add_argument("--bam", required=True, type=_path_exists, help="Input SAM/BAM.")
    f.add_argument("--out-bam", required=True, help="Output BAM (or .sam).")
    f.add_argument("--outdir", required=True, help="Directory for summary.json, report and logs.")
    f.add_argument("--options", type=_path_exists, help="SamReaderOptions JSON; flags below override it.")
    for flag in KEEP_FLAGS:
        f.add_argument(
            "--" + flag.replace("_", "-"),
            dest=flag,
            action=argparse.BooleanOptionalAction,
            default=None,
            help=f"Override read_requirements.{flag}.",
        )
    f.add_argument("--min-mapping-quality", type=int, default=None, help="Minimum MAPQ for aligned reads.")
    f.add_argument("--min-base-quality", type=int, default=None, help="Threshold handed to the client.")
    f.add_argument(
        "--min-base-quality-mode",
        choices=[m.name for m in MinBaseQualityMode],
        default=None,
        help="How min-base-quality is enforced.",
    )
    f.add_argument(
        "--index-mode",
        choices=[m.name for m in IndexHandlingMode],
        default=None,
        help="INDEX_BASED_ON_FILENAME requires an index and indexes the output.",
    )
    f.add_argument(
        "--aux-field-handling",
        choices=[m.name for m in AuxFieldHandling],
        default=None,
        help="SKIP_AUX_FIELDS strips aux tags from written reads.",
    )
    f.add_argument("--hts-block-size", type=int, default=None, help="htslib block size (<=0: default).")
    f.add_argument(
        "--downsample-fraction",
        type=float,
        default=None,
        help="Keep each read with this probability; 0 disables downsampling.",
    )
    f.add_argument("--random-seed", type=int, default=None, help="Seed for downsampling.")
    f.add_argument("--region", default=None, help="Region such as chr1:100-200 (needs an index).")
    f.add_argument("--experiment-name", default="", help="Recorded in runtime_metrics.json.")
    f.add_argument("--job-name", default="filter", help="Recorded in runtime_metrics.json.")
    f.add_argument("--no-report", action="store_true", help="Skip report.html and plots.")
    f.add_argument("--dry-run", action="store_true", help="Validate options and print them only.")

    # -----------------
    # contigs
    # -----------------
    c = sub.add_parser(
        "contigs",
        help="Build a contig translation table between two files (FASTA/BAM/VCF).",
    )
    c.add_argument("--primary", required=True, type=_path_exists, help="Primary (usually reference) file.")
    c.add_argument("--secondary", required=True, type=_path_exists, help="Secondary file.")
    c.add_argument("--out", default=None, help="Write the table JSON here instead of stdout.")

    # -----------------
    # vcf-header
    # -----------------
    h = sub.add_parser(
        "vcf-header",
        help="Write a record-less VCF whose header follows VcfWriterOptions.",
    )
    h.add_argument("--out", required=True, help="Output .vcf, .vcf.gz or .bcf.")
    h.add_argument("--options", type=_path_exists, help="VcfWriterOptions JSON.")
    h.add_argument("--fasta", type=_path_exists, help="Take contigs from this FASTA.")
    h.add_argument("--sample", action="append", default=None, help="Sample name (repeatable).")
    h.add_argument("--filter", action="append", default=None, help="FILTER as ID=Description (repeatable).")
    h.add_argument(
        "--exclude",
        action="append",
        default=None,
        choices=[flag for flag, _info in OPTIONAL_FORMAT_FIELDS],
        help="Drop an optional FORMAT field (repeatable).",
    )
    h.add_argument("--index", action="store_true", help="bgzip output and write a tabix index.")

    return p


def _sam_options_from_args(args: argparse.Namespace) -> SamReaderOptions:
    data: Dict[str, Any] = to_dict(load_options(args.options, SamReaderOptions)) if args.options else {}
    req: Dict[str, Any] = dict(data.get("read_requirements", {}))

    for flag in KEEP_FLAGS:
        if getattr(args, flag) is not None:
            req[flag] = getattr(args, flag)
    for name in ("min_mapping_quality", "min_base_quality", "min_base_quality_mode"):
        if getattr(args, name) is not None:
            req[name] = getattr(args, name)
    data["read_requirements"] = req

    for name in ("index_mode", "aux_field_handling", "hts_block_size", "downsample_fraction", "random_seed"):
        if getattr(args, name) is not None:
            data[name] = getattr(args, name)
    return from_dict(SamReaderOptions, data)


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_options(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose)
    try:
        cls = _OPTION_KINDS[args.kind]
        record = load_options(args.options, cls) if args.options else cls()
        print(dumps(record))
        return 0
    except Exception as e:
        return _handle_error(e)


def cmd_filter(args: argparse.Namespace) -> int:
    collector = RuntimeMetricsCollector(
        RuntimeTask(experiment_name=args.experiment_name, job_name=args.job_name),
        command_line=["htsopts"] + sys.argv[1:],
    )
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "filter.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("htsopts")
    logger.info("htsopts %s", __version__)

    exit_code = 0
    try:
        options = _sam_options_from_args(args)

        if args.dry_run:
            print("Dry-run: options are valid.")
            print(dumps(options))
            print("Planned outputs:")
            print(f"  {Path(args.out_bam).expanduser().resolve()}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            return 0

        outdir = ensure_outdir(outdir)
        run = filter_bam(args.bam, args.out_bam, options, region=args.region, progress=args.verbose > 0)
        threshold = client_min_base_quality(options.read_requirements)
        run["client_min_base_quality"] = threshold
        write_json(outdir / "summary.json", run)

        if not args.no_report:
            plot_png = outdir / "plots" / "read_outcomes.png"
            plot_read_outcomes(counts=run["counts"], out_png=plot_png)
            report_path = render_report(
                outdir=outdir,
                version=__version__,
                run=run,
                client_min_base_quality=threshold,
                plot=str(Path("plots") / plot_png.name),
            )
            logger.info("Report written: %s", report_path)

        print(str(Path(run["out_path"])))
        return 0
    except Exception as e:
        exit_code = _handle_error(e, log_path=log_path)
        return exit_code
    finally:
        if not args.dry_run and outdir.exists():
            write_runtime_metrics(outdir / "runtime_metrics.json", collector.finalize(exit_code=exit_code))


def cmd_contigs(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose)
    try:
        primary = _contigs_from_path(args.primary)
        secondary = _contigs_from_path(args.secondary)
        table = build_translation_table(contig_names(primary), contig_names(secondary))
        translated = translate_contigs(primary, table)

        payload = {
            "table": to_dict(table),
            "translated_contigs": [to_dict(c) for c in translated],
        }
        if args.out:
            write_json(args.out, payload)
            print(args.out)
        else:
            print(json.dumps(payload, indent=2, sort_keys=True))
        return 0
    except Exception as e:
        return _handle_error(e)


def _parse_filter_arg(value: str) -> Dict[str, str]:
    fid, _, desc = value.partition("=")
    return {"id": fid, "description": desc}


def cmd_vcf_header(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose)
    try:
        data: Dict[str, Any] = to_dict(load_options(args.options, VcfWriterOptions)) if args.options else {}
        if args.fasta:
            data["contigs"] = [to_dict(c) for c in contigs_from_fasta(args.fasta)]
        if args.sample:
            data["sample_names"] = list(args.sample)
        if args.filter:
            data["filters"] = [_parse_filter_arg(v) for v in args.filter]
        if args.exclude:
            entries = dict(data.get("desired_format_entries", {}))
            entries.update({flag: True for flag in args.exclude})
            data["desired_format_entries"] = entries
        if args.index:
            data["index_mode"] = IndexHandlingMode.INDEX_BASED_ON_FILENAME.name

        options = from_dict(VcfWriterOptions, data)
        out = write_vcf_header(args.out, options)
        print(str(out))
        return 0
    except Exception as e:
        return _handle_error(e)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "options":
        return cmd_options(args)
    if args.cmd == "filter":
        return cmd_filter(args)
    if args.cmd == "contigs":
        return cmd_contigs(args)
    if args.cmd == "vcf-header":
        return cmd_vcf_header(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
