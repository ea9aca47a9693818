# routes_upload.py
"""
Statement upload: one bank export per request, parsed, deduplicated and
auto-categorized in a single run.
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from ledger.auth import AuthSession, require_session
from ledger.deps import get_db
from ledger.schemas import ImportSummaryOut
from ledger.services.ingestion import import_statement

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/upload", response_model=ImportSummaryOut)
async def upload_statement(
    file: UploadFile | None = File(None),
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    """
    Import one statement file (.xlsx or .csv).

    Re-uploading the same export is harmless: rows already in the ledger are
    counted as skipped.
    """
    file_name = file.filename if file is not None else None
    content = await file.read() if file is not None else None

    logger.info("Upload %r by %s (%d bytes)", file_name, session.user_id, len(content or b""))
    return import_statement(db, file_name, content, uploaded_by=session.user_id)
