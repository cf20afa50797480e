# Seedkeeper - Vault API
#
# REST endpoints the desktop UI calls:
# - Wallet creation, unlock, logout, session timeout
# - Passcode change
# - Sub-account seed storage
# - Sync API auth, address book and node endpoint
#
# Every route requires the X-Session-Token header. Vault failures come back
# as HTTP errors with the stable error code in the detail.

from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..errors import ErrorCode, SeedNotFound
from ..vault import VaultResult, WalletVault, generate_mnemonic
from .security import verify_session_token

router = APIRouter(prefix="/api/vault", tags=["vault"])

# ── Singleton ────────────────────────────────────────────────────────

_wallet_vault: Optional[WalletVault] = None


def get_wallet_vault() -> WalletVault:
    """Lazy singleton, created on first use."""
    global _wallet_vault
    if _wallet_vault is None:
        _wallet_vault = WalletVault()
    return _wallet_vault


def set_wallet_vault(vault: Optional[WalletVault]) -> None:
    """Replace the singleton (startup wiring and tests)."""
    global _wallet_vault
    _wallet_vault = vault


# ── Error mapping ────────────────────────────────────────────────────

ERROR_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.INCORRECT_PASSCODE: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.NO_WALLET_RECORD: status.HTTP_404_NOT_FOUND,
    ErrorCode.SEED_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_ARCHIVE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_MNEMONIC: status.HTTP_400_BAD_REQUEST,
    ErrorCode.WEAK_PASSCODE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_TIMEOUT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_ENDPOINT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CONTACT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.STORE_UNAVAILABLE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.MIGRATION_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.SNAPSHOT_UNAVAILABLE: status.HTTP_502_BAD_GATEWAY,
}


def unwrap(result: VaultResult):
    """Return result.value, or raise the HTTPException for its error code."""
    if result.success:
        return result.value
    raise HTTPException(
        status_code=ERROR_STATUS.get(result.error, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail={"error": result.error.value, "message": result.message},
    )


# ── Request Models ───────────────────────────────────────────────────


class CreateWalletRequest(BaseModel):
    passcode: str
    mnemonic: Optional[str] = None  # generated when omitted
    logout_time_preference: Optional[int] = Field(None, ge=-1)


class UnlockRequest(BaseModel):
    passcode: str
    remember: bool = False
    timeout_minutes: Optional[int] = Field(None, ge=-1)


class SetSessionRequest(BaseModel):
    mnemonic: str
    remember: bool = False
    timeout_minutes: Optional[int] = Field(None, ge=-1)


class SessionTimeoutRequest(BaseModel):
    minutes: int = Field(..., ge=-1)


class ChangePasscodeRequest(BaseModel):
    current_passcode: str
    new_passcode: str


class SaveSeedRequest(BaseModel):
    seed: str = Field(..., min_length=1)
    passcode: str


class RevealSeedRequest(BaseModel):
    passcode: str


class ApiAuthRequest(BaseModel):
    auth_token: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    username: Optional[str] = None


class ContactRequest(BaseModel):
    name: str = Field(..., min_length=1)
    wallet_address: str = Field(..., min_length=1)


class NodeEndpointRequest(BaseModel):
    endpoint: str


# ── Wallet & session ─────────────────────────────────────────────────


@router.get("/status")
async def get_vault_status(token: str = Depends(verify_session_token)):
    """Whether a wallet exists, plus the current session state."""
    vault = get_wallet_vault()
    record = unwrap(vault.get_wallet_record())
    status_info = vault.session_status()
    return {
        "wallet_exists": record is not None,
        "logout_time_preference": record.logout_time_preference if record else None,
        "state": status_info["state"],
        "session": status_info["session"],
    }


@router.post("/wallet", status_code=status.HTTP_201_CREATED)
async def create_wallet(body: CreateWalletRequest, token: str = Depends(verify_session_token)):
    """
    Create the wallet.

    When no mnemonic is supplied a fresh 12-word one is generated and
    returned once so the user can write it down.
    """
    generated = body.mnemonic is None
    mnemonic = generate_mnemonic() if generated else body.mnemonic
    value = unwrap(get_wallet_vault().create_wallet(
        mnemonic, body.passcode, body.logout_time_preference
    ))
    response = {"address": value["address"]}
    if generated:
        response["mnemonic"] = mnemonic
    return response


@router.post("/unlock")
async def unlock(body: UnlockRequest, token: str = Depends(verify_session_token)):
    session = unwrap(get_wallet_vault().unlock(
        body.passcode, remember=body.remember, timeout_minutes=body.timeout_minutes
    ))
    return {"session": session}


@router.post("/session")
async def set_session(body: SetSessionRequest, token: str = Depends(verify_session_token)):
    session = unwrap(get_wallet_vault().set_session(
        body.mnemonic, timeout_minutes=body.timeout_minutes, remember=body.remember
    ))
    return {"session": session}


@router.post("/session/restore")
async def restore_session(token: str = Depends(verify_session_token)):
    """Re-establish a remembered session, if one is still valid."""
    session = unwrap(get_wallet_vault().restore_persisted_session())
    return {"restored": session is not None, "session": session}


@router.post("/logout")
async def logout(token: str = Depends(verify_session_token)):
    unwrap(get_wallet_vault().logout())
    return {"success": True, "message": "Logged out"}


@router.post("/activity")
async def record_activity(token: str = Depends(verify_session_token)):
    """UI heartbeat: user input seen, reset the inactivity window."""
    vault = get_wallet_vault()
    unwrap(vault.record_activity())
    return {"state": vault.session_status()["state"]}


@router.put("/session/timeout")
async def update_session_timeout(body: SessionTimeoutRequest, token: str = Depends(verify_session_token)):
    session = unwrap(get_wallet_vault().update_session_timeout(body.minutes))
    return {"timeout_minutes": body.minutes, "session": session}


@router.post("/passcode")
async def change_passcode(body: ChangePasscodeRequest, token: str = Depends(verify_session_token)):
    count = unwrap(get_wallet_vault().change_passcode(body.current_passcode, body.new_passcode))
    return {"success": True, "reencrypted_seeds": count}


# ── Sub-account seeds ────────────────────────────────────────────────


@router.get("/seeds")
async def list_seeds(token: str = Depends(verify_session_token)):
    return {"addresses": unwrap(get_wallet_vault().list_seed_addresses())}


@router.put("/seeds/{address}")
async def save_seed(address: str, body: SaveSeedRequest, token: str = Depends(verify_session_token)):
    unwrap(get_wallet_vault().save_seed(address, body.seed, body.passcode))
    return {"success": True, "address": address}


@router.post("/seeds/{address}/reveal")
async def reveal_seed(address: str, body: RevealSeedRequest, token: str = Depends(verify_session_token)):
    """
    Decrypt a sub-account seed.

    Security: Returns the plaintext seed. Use sparingly; access is audit-logged.
    """
    seed = unwrap(get_wallet_vault().get_seed(address, body.passcode))
    return {"address": address, "seed": seed}


@router.delete("/seeds/{address}")
async def delete_seed(address: str, token: str = Depends(verify_session_token)):
    removed = unwrap(get_wallet_vault().delete_seed(address))
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": SeedNotFound.code.value, "message": SeedNotFound.default_message},
        )
    return {"success": True, "address": address}


# ── Sync API auth ────────────────────────────────────────────────────


@router.put("/api-auth")
async def set_api_auth(body: ApiAuthRequest, token: str = Depends(verify_session_token)):
    expiry = unwrap(get_wallet_vault().set_api_auth(body.auth_token, body.user_id, body.username))
    return {"success": True, "token_expiry": expiry}


@router.get("/api-auth")
async def get_api_auth(token: str = Depends(verify_session_token)):
    """Stored sync API auth, or null when absent or expired."""
    auth = unwrap(get_wallet_vault().get_api_auth())
    if auth is None:
        return {"auth": None}
    return {"auth": {
        "auth_token": auth.auth_token,
        "token_expiry": auth.token_expiry,
        "user_id": auth.user_id,
        "username": auth.username,
    }}


@router.delete("/api-auth")
async def clear_api_auth(token: str = Depends(verify_session_token)):
    unwrap(get_wallet_vault().clear_api_auth())
    return {"success": True}


# ── Address book ─────────────────────────────────────────────────────


@router.get("/contacts")
async def list_contacts(token: str = Depends(verify_session_token)):
    contacts = unwrap(get_wallet_vault().list_contacts())
    return {"contacts": [
        {
            "id": c.id,
            "name": c.name,
            "wallet_address": c.wallet_address,
            "date_added": c.date_added,
        }
        for c in contacts
    ]}


@router.post("/contacts", status_code=status.HTTP_201_CREATED)
async def add_contact(body: ContactRequest, token: str = Depends(verify_session_token)):
    contact_id = unwrap(get_wallet_vault().add_contact(body.name, body.wallet_address))
    return {"id": contact_id}


@router.put("/contacts/{contact_id}")
async def update_contact(contact_id: int, body: ContactRequest, token: str = Depends(verify_session_token)):
    unwrap(get_wallet_vault().update_contact(contact_id, body.name, body.wallet_address))
    return {"success": True, "id": contact_id}


@router.delete("/contacts/{contact_id}")
async def delete_contact(contact_id: int, token: str = Depends(verify_session_token)):
    unwrap(get_wallet_vault().delete_contact(contact_id))
    return {"success": True, "id": contact_id}


# ── Node endpoint ────────────────────────────────────────────────────


@router.get("/node")
async def get_node_endpoint(token: str = Depends(verify_session_token)):
    return {"endpoint": unwrap(get_wallet_vault().get_node_endpoint())}


@router.put("/node")
async def update_node_endpoint(body: NodeEndpointRequest, token: str = Depends(verify_session_token)):
    return {"endpoint": unwrap(get_wallet_vault().update_node_endpoint(body.endpoint))}


@router.delete("/node")
async def reset_node_endpoint(token: str = Depends(verify_session_token)):
    """Back to the default endpoint."""
    return {"endpoint": unwrap(get_wallet_vault().reset_node_endpoint())}
