"""
Analysis router.

Endpoints:
  POST /analyze   - analyze staged uploads, return the reconciled result
  POST /export    - build the tax summary workbook from a result
  POST /package   - build the audit ZIP from a result and the original files
"""

import json
import logging
from typing import List, Optional

import anthropic
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from pydantic import ValidationError

from app.models.analysis import AnalysisResult
from app.models.document import AnalyzeRequest, RawFile
from app.services.audit_packager import (
    SUMMARY_WORKBOOK_NAME,
    ArchiveFolderError,
    build_audit_package,
)
from app.services.extractor import AnalysisInput, analyze_documents
from app.services.llm_client import AnalysisClient, ModelCallError
from app.services.reconciler import EmptyResponseError, MalformedResponseError
from app.services.storage import delete_staged_file, download_staged_file
from app.services.workbook_builder import build_workbook_bytes

logger = logging.getLogger(__name__)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
AUDIT_PACKAGE_NAME = "T776_Audit_Package.zip"


def _error(status_code: int, message: str, error_code: str, **extra) -> HTTPException:
    """Build an HTTPException with a structured detail payload."""
    return HTTPException(
        status_code=status_code,
        detail={"detail": message, "error_code": error_code, **extra},
    )


def get_analysis_client(request: Request) -> Optional[AnalysisClient]:
    """Return the model client created at startup, or None when it is not configured."""
    return getattr(request.app.state, "analysis_client", None)


async def _cleanup_staged_files(urls: list[str]) -> None:
    for url in urls:
        try:
            await run_in_threadpool(delete_staged_file, url)
        except Exception:
            logger.exception("Failed to delete staged file %s", url)


# ---------------------------------------------------------------------------
# POST /analyze
# ---------------------------------------------------------------------------

@router.post("/analyze")
async def analyze(
    body: AnalyzeRequest,
    client: Optional[AnalysisClient] = Depends(get_analysis_client),
) -> dict:
    """
    Download the staged files, run the analysis and return the result.

    Staged files are always deleted afterwards, whether or not the analysis
    succeeded.
    """
    try:
        if client is None:
            raise _error(503, "Analysis model is not configured", "model_unavailable")

        inputs: list[AnalysisInput] = []
        for blob in body.blobs:
            try:
                content = await run_in_threadpool(download_staged_file, blob.blob_url)
            except Exception as e:
                logger.error("Failed to download staged file %s: %s", blob.filename, e)
                continue
            inputs.append(
                AnalysisInput(file=RawFile(name=blob.filename, content=content), section=blob.section)
            )

        try:
            result = await run_in_threadpool(analyze_documents, inputs, client)
        except EmptyResponseError as e:
            raise _error(502, e.message, e.error_code)
        except MalformedResponseError as e:
            raise _error(
                502,
                "The AI returned an invalid response. Please try re-sending with slightly fewer files.",
                e.error_code,
                raw=e.raw_excerpt,
            )
        except ModelCallError as e:
            raise _error(502, e.message, e.error_code)
        except anthropic.APIError as e:
            logger.error("Model API error: %s", e)
            raise _error(502, f"Model API error: {e}", "model_call_failed")
    finally:
        await _cleanup_staged_files([blob.blob_url for blob in body.blobs])

    return {"data": result.model_dump()}


# ---------------------------------------------------------------------------
# POST /export
# ---------------------------------------------------------------------------

@router.post("/export")
async def export_workbook(result: AnalysisResult) -> Response:
    """Return the tax summary workbook for a result as an .xlsx download."""
    content = build_workbook_bytes(result)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{SUMMARY_WORKBOOK_NAME}"'},
    )


# ---------------------------------------------------------------------------
# POST /package
# ---------------------------------------------------------------------------

@router.post("/package")
async def export_package(
    result: str = Form(...),
    files: List[UploadFile] = File(...),
    relative_paths: Optional[List[str]] = Form(None),
) -> Response:
    """
    Return the audit ZIP.

    ``relative_paths``, when given, lines up with ``files`` and keeps the
    folder structure of a directory upload inside Source_Documents/.
    """
    try:
        analysis = AnalysisResult.model_validate(json.loads(result))
    except (json.JSONDecodeError, ValidationError) as e:
        raise _error(400, f"Invalid analysis result: {e}", "invalid_result")

    paths = relative_paths or []
    originals: list[RawFile] = []
    for idx, upload in enumerate(files):
        filename = upload.filename or f"file_{idx + 1}"
        relative_path = paths[idx] if idx < len(paths) and paths[idx] else filename
        originals.append(
            RawFile(
                name=filename.replace("\\", "/").split("/")[-1],
                content=await upload.read(),
                relative_path=relative_path,
            )
        )

    try:
        content = await run_in_threadpool(build_audit_package, analysis, originals)
    except ArchiveFolderError as e:
        raise _error(500, e.message, e.error_code)

    return Response(
        content=content,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{AUDIT_PACKAGE_NAME}"'},
    )
