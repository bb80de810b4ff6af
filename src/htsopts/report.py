from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>htsopts filter report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    pre { padding: 12px; overflow-x: auto; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>Read filtering report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Inputs</h2>
<table>
  <tr><th>Input</th><td><code>{{ run.in_path }}</code></td></tr>
  <tr><th>Output</th><td><code>{{ run.out_path }}</code></td></tr>
  {% if run.index_path %}
  <tr><th>Output index</th><td><code>{{ run.index_path }}</code></td></tr>
  {% endif %}
  {% if run.region %}
  <tr><th>Region</th><td><code>{{ run.region }}</code></td></tr>
  {% endif %}
</table>

<h2>Read requirements</h2>
<table>
  {% for key, value in run.options.read_requirements.items() %}
  <tr><th>{{ key }}</th><td>{{ value }}</td></tr>
  {% endfor %}
  <tr><th>downsample_fraction</th><td>{{ run.options.downsample_fraction }}</td></tr>
  <tr><th>random_seed</th><td>{{ run.options.random_seed }}</td></tr>
</table>
{% if client_min_base_quality is not none %}
<p>Base quality is enforced by the client: reads were <em>not</em> filtered on
<code>min_base_quality={{ client_min_base_quality }}</code>.</p>
{% endif %}

<h2>Counts</h2>
<table>
  <tr><th>Total reads seen</th><td>{{ counts.reads_total }}</td></tr>
  <tr><th>Kept</th><td>{{ counts.reads_kept }}</td></tr>
  <tr><th>Downsampled away</th><td>{{ counts.reads_downsampled }}</td></tr>
  {% for reason, n in counts.rejected.items() %}
  <tr><th>Rejected: {{ reason }}</th><td>{{ n }}</td></tr>
  {% endfor %}
</table>

{% if plot %}
<h2>Plot</h2>
<img src="{{ plot }}" alt="read outcomes">
{% endif %}

<hr>
<p class="small">htsopts {{ version }} &middot; runtime {{ "%.2f"|format(run.runtime_seconds) }}s</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    client_min_base_quality: Optional[int] = None,
    plot: Optional[str] = None,
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        run=run,
        counts=run.get("counts", {}),
        client_min_base_quality=client_min_base_quality,
        plot=plot,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.debug("Report written to %s", out_path)
    return out_path
