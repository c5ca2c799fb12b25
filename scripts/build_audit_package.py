#!/usr/bin/env python3
"""
Dev helper: run the rental analysis on local folders and write the outputs.

Walks the given folders, analyzes every supported file with the model (or
reuses a saved result), and writes the result JSON, the tax summary workbook
and the audit ZIP to the output directory.

Usage
-----
# Current-year documents only
python scripts/build_audit_package.py ./client_2024

# With prior-year context and last year's T776
python scripts/build_audit_package.py ./client_2024 --prior ./client_2023 --template ./t776_2023

# Rebuild the workbook and ZIP from a saved result without calling the model
python scripts/build_audit_package.py ./client_2024 --result out/analysis_result.json

Environment / .env
------------------
ANTHROPIC_API_KEY   Required unless --result is given.
ANALYSIS_MODEL      Model name override.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from app.models.analysis import AnalysisResult
from app.services.audit_packager import SUMMARY_WORKBOOK_NAME, build_audit_package
from app.services.extractor import AnalysisInput, analyze_documents, collect_folder_inputs
from app.services.llm_client import AnalysisClient
from app.services.workbook_builder import build_workbook_bytes

def main() -> int:
    parser = argparse.ArgumentParser(description="Build a T776 audit package from local folders")
    parser.add_argument("current", help="Folder with current-year documents")
    parser.add_argument("--prior", help="Folder with prior-year context documents")
    parser.add_argument("--template", help="Folder with the prior-year T776")
    parser.add_argument("--result", help="Saved analysis result JSON (skips the model call)")
    parser.add_argument("--output", "-o", default="out", help="Output directory (default: out)")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    inputs: list[AnalysisInput] = []
    for folder, section in (
        (args.prior, "files_prior"),
        (args.template, "files_t776"),
        (args.current, "files_current"),
    ):
        if not folder:
            continue
        path = Path(folder)
        if not path.is_dir():
            print(f"Error: Directory not found: {path}", file=sys.stderr)
            return 1
        inputs.extend(collect_folder_inputs(path, section))

    if not inputs:
        print("No supported files found", file=sys.stderr)
        return 1

    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    if args.result:
        result = AnalysisResult.model_validate_json(Path(args.result).read_text())
    else:
        result = analyze_documents(inputs, AnalysisClient.from_env())
        result_path = output_dir / "analysis_result.json"
        result_path.write_text(json.dumps(result.model_dump(), indent=2))
        print(f"  JSON:  {result_path}")

    workbook_path = output_dir / SUMMARY_WORKBOOK_NAME
    workbook_path.write_bytes(build_workbook_bytes(result))
    print(f"  Excel: {workbook_path}")

    package_path = output_dir / "T776_Audit_Package.zip"
    package_path.write_bytes(build_audit_package(result, [i.file for i in inputs]))
    print(f"  ZIP:   {package_path}")

    if result.email_draft:
        print("\nDraft client email:\n")
        print(result.email_draft)

    return 0


if __name__ == "__main__":
    sys.exit(main())
