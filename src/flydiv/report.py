from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>flydiv {{ summary.command }} report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>flydiv {{ summary.command }} report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      {% if summary.axt_path %}<tr><th>Alignment (.axt)</th><td><code>{{ summary.axt_path }}</code></td></tr>{% endif %}
      {% if summary.vcf_path %}<tr><th>VCF</th><td><code>{{ summary.vcf_path }}</code></td></tr>{% endif %}
      {% if summary.fasta_path %}<tr><th>CDS FASTA</th><td><code>{{ summary.fasta_path }}</code></td></tr>{% endif %}
      {% if summary.query_path %}<tr><th>Queries</th><td><code>{{ summary.query_path }}</code> ({{ summary.queries }} {{ summary.mode }})</td></tr>{% endif %}
    </table>
  </div>
  <div class="card">
    <h3>Output</h3>
    <table>
      <tr><th>Table</th><td><code>{{ summary.out_path }}</code></td></tr>
      <tr><th>Runtime (s)</th><td>{{ "%.2f"|format(summary.runtime_seconds) }}</td></tr>
    </table>
  </div>
</div>

{% if summary.counts %}
<h2>Counts</h2>
<table>
  {% for key, value in summary.counts|dictsort %}
  <tr><th>{{ key }}</th><td>{{ value }}</td></tr>
  {% endfor %}
</table>
{% endif %}

{% if summary.covered_length %}
<h2>Divergence per chromosome</h2>
<table>
  <tr><th>Chromosome</th><th>Informative sites</th><th>Diverged sites</th></tr>
  {% for chrom, length in summary.covered_length|dictsort %}
  <tr><td>{{ chrom }}</td><td>{{ length }}</td><td>{{ summary.diverged_sites.get(chrom, 0) }}</td></tr>
  {% endfor %}
</table>
{% endif %}

{% if summary.sites_per_chrom %}
<h2>Four-fold sites per chromosome</h2>
<table>
  {% for chrom, n in summary.sites_per_chrom|dictsort %}
  <tr><th>{{ chrom }}</th><td>{{ n }}</td></tr>
  {% endfor %}
</table>
{% endif %}

{% if plots %}
<h2>Plots</h2>
<div class="grid">
  {% for name, src in plots|dictsort %}
  <div class="card">
    <h3>{{ name|replace("_", " ") }}</h3>
    <img src="{{ src }}" alt="{{ name }}">
  </div>
  {% endfor %}
</div>
{% endif %}

<h2>Interpretation notes</h2>
<ul>
  <li>Positions not covered by the alignment are gaps, not errors; they count neither as informative nor as diverged.</li>
  <li>Lower-case bases come from soft-masked repeats and are flagged as low quality.</li>
  {% if summary.command == "polysites" %}
  <li>The ancestral allele is the outgroup base; SNPs without outgroup coverage are unknown (<code>u</code>) and left out of the frequency spectrum.</li>
  {% endif %}
</ul>

<hr>
<p class="small">flydiv {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    summary: Dict[str, Any],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        summary=summary,
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.debug("Report written to %s", out_path)
    return out_path
