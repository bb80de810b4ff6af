"""htsopts: reader/writer options and metadata records for genomics file I/O.

The package carries the records exchanged between SAM/BAM and VCF
readers/writers and their callers, plus the small pieces of decision logic
those records imply (read requirements, contig translation, downsampling):

    htsopts filter --bam in.bam --out-bam kept.bam --downsample-fraction 0.25

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
