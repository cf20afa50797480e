"""Backup API routes: export the vault archive and restore from one.

The archive is returned as raw ZIP bytes; restore takes it back base64
encoded in a JSON body alongside the passcode of the wallet inside it.
"""

import base64
import binascii
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from ..errors import InvalidArchive
from .security import verify_session_token
from .vault_routes import get_wallet_vault, unwrap

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/backup", tags=["backup"])


# ── Pydantic Models ──────────────────────────────────────────────────


class ExportRequest(BaseModel):
    # With a passcode the sync daemon's snapshot is captured into the backup
    passcode: Optional[str] = None


class RestoreRequest(BaseModel):
    archive: str = Field(..., min_length=1, description="Base64 encoded archive")
    passcode: str


# ── Routes ───────────────────────────────────────────────────────────


@router.post("/export")
async def export_backup(
    body: ExportRequest,
    token: str = Depends(verify_session_token),
):
    """Download the vault backup archive (application/zip)."""
    archive = unwrap(get_wallet_vault().export_vault(body.passcode))
    filename = f"seedkeeper-backup-{datetime.now().strftime('%Y%m%d-%H%M%S')}.zip"
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/restore")
async def restore_backup(
    body: RestoreRequest,
    token: str = Depends(verify_session_token),
):
    """Replace the local vault with a backup and sign in with it."""
    try:
        archive = base64.b64decode(body.archive, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": InvalidArchive.code.value, "message": "Archive is not valid base64"},
        )

    value = unwrap(get_wallet_vault().restore_vault(archive, body.passcode))
    logger.info("Vault restored via API for %s", value["address"])
    return {"success": True, **value}
