"""
Rental document analysis service.

Full pipeline for one request: files -> normalized model parts (with
section markers) -> model -> reconciled AnalysisResult.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app.models.analysis import AnalysisResult
from app.models.document import RawFile, TextPart
from app.services.format_sniffer import is_supported
from app.services.llm_client import AnalysisClient
from app.services.normalizer import NormalizedBatch, normalize_files
from app.services.reconciler import reconcile

logger = logging.getLogger(__name__)

SECTION_MARKERS: dict[str, str] = {
    "files_prior": "--- SECTION: PRIOR YEAR FILES (Context Only) ---",
    "files_t776": "--- SECTION: PRIOR YEAR T776 (Template) ---",
    "files_current": "--- SECTION: CURRENT YEAR FILES ---",
}

ANALYSIS_PROMPT = """\
You are a senior CPA reviewing a client's rental property documents for the
Canadian T776 (Statement of Real Estate Rentals). Do not simply transcribe the
client's numbers: audit them for consistency, completeness and accrual-basis
compliance.

The documents that follow are grouped by section markers:
- PRIOR YEAR FILES (Context Only): leases, mortgage statements, property tax
  assessments. They describe what should happen this year.
- PRIOR YEAR T776 (Template): last year's filed figures, the benchmark.
- CURRENT YEAR FILES: what the client reports for this year.
Each file is introduced by its path. Paths containing " > " are attachments
found inside an email (e.g. "Email.msg > invoice.pdf").

Review steps:
1. From the prior-year files, work out the expected rent (rate x 12), the
   recurring expenses (property tax, insurance, mortgage interest) and the
   tenancy (tenant, lease end).
2. Extract the totals the client reported for the current year.
3. Compare expected and reported figures. Look for tenant turnover (missing
   commissions, vacancy-period utilities, turnover repairs, last-month's-rent
   deposits), new properties (supplemental tax bills, closing adjustments),
   differences between similar properties, and rent received that does not
   match the lease (arrears vs. prepaid deposits).

Output:
- T776 figures per property. Where documents clearly show an accrual
  adjustment the client missed, make it and flag it as an "AI Adjustment" in
  notes.
- For every current-year amount, source_file must be the exact path shown in
  the document header it came from.
- A draft email to the client with clarification questions. Never ask what
  the other files already answer, and explain why each question is asked.

Respond with ONLY valid JSON matching this schema:
{
  "tax_year": number,
  "properties": [
    {
      "address": string,
      "income": {"<category>": {"amount": number, "source_file": string}},
      "income_prior": {"<category>": number},
      "expenses": {"<category>": {"amount": number, "source_file": string}},
      "expenses_prior": {"<category>": number},
      "source_files_read": [string],
      "notes": string
    }
  ],
  "email_draft": string,
  "all_files_detected": [string]
}
"""


@dataclass
class AnalysisInput:
    """A top-level uploaded file and the upload section it came from."""
    file: RawFile
    section: Optional[str] = None


def collect_folder_inputs(folder: Path, section: Optional[str] = None) -> list[AnalysisInput]:
    """
    Read every supported file under ``folder`` as an analysis input.

    The file's path relative to ``folder.parent`` (e.g. "client_2024/lease.pdf")
    is used both as the name the model cites and as its location in the
    audit package, so workbook links resolve inside the ZIP.
    """
    inputs = []
    for path in sorted(p for p in folder.rglob("*") if p.is_file()):
        if not is_supported(path.name):
            logger.debug("Ignoring %s", path)
            continue
        relative = path.relative_to(folder.parent).as_posix()
        inputs.append(
            AnalysisInput(
                file=RawFile(name=relative, content=path.read_bytes(), relative_path=relative),
                section=section,
            )
        )
    return inputs


def build_model_input(inputs: list[AnalysisInput]) -> NormalizedBatch:
    """
    Normalize every input in order, preceding each one with its section
    marker when it has a known section.
    """
    batch = NormalizedBatch()
    for item in inputs:
        marker = SECTION_MARKERS.get(item.section or "")
        if marker:
            batch.parts.append(TextPart(text=marker))
        normalize_files([item.file], batch)
    return batch


def analyze_documents(inputs: list[AnalysisInput], client: AnalysisClient) -> AnalysisResult:
    """
    Run the full analysis for one request.

    Raises:
        EmptyResponseError, MalformedResponseError: unusable model reply.
        ModelCallError: model unreachable after retries.
    """
    batch = build_model_input(inputs)
    logger.info(
        "Sending %d parts from %d files to the model", len(batch.parts), len(batch.manifest)
    )

    raw_text = client.analyze(ANALYSIS_PROMPT, batch.parts)
    result = reconcile(raw_text, batch.manifest)

    logger.info("Analysis complete: %d properties", len(result.properties))
    return result
