from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from core.config import Settings, get_settings
from core.firebase import get_firestore_client, verify_id_token
from services.reconciliation import ReconciliationClient
from services.registry import CheckpointRegistry, OfficerRegistry
from services.scan_store import ScanRecordStore
from services.verification_service import VerificationEngine

# Standard credentials exception
CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


# --- Services, built once in main.lifespan and parked on app.state ---


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_verification_engine(request: Request) -> VerificationEngine:
    return request.app.state.verification_engine


def get_reconciliation_client(request: Request) -> ReconciliationClient:
    return request.app.state.reconciliation_client


def get_checkpoint_registry(request: Request) -> CheckpointRegistry:
    return request.app.state.checkpoint_registry


def get_officer_registry(request: Request) -> OfficerRegistry:
    return request.app.state.officer_registry


def get_scan_store(request: Request) -> ScanRecordStore:
    return request.app.state.scan_store


def get_device_id(
    x_device_id: Annotated[Optional[str], Header(alias="X-Device-Id")] = None,
) -> str:
    # Scans from clients that send no id share one capture session
    return x_device_id.strip() if x_device_id and x_device_id.strip() else "default"


# --- Admin auth (Firebase ID token + Firestore profile role) ---


async def get_current_user_basic_auth(request: Request):
    # 1) Extract & Analyze Authorization Header
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise CREDENTIALS_EXCEPTION
    token = auth_header.split(" ", 1)[1]

    # 2) Verify Firebase Token
    try:
        decoded = verify_id_token(token)
    except Exception:
        raise CREDENTIALS_EXCEPTION
    uid = decoded.get("uid")
    if not uid:
        raise CREDENTIALS_EXCEPTION

    # 3) Fetch the Firestore user profile
    try:
        snapshot = get_firestore_client().collection("users").document(uid).get()
    except Exception as e:
        print(f"Firestore error fetching profile for {uid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not fetch user profile.",
        )
    if not snapshot.exists:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found in Firestore",
        )
    profile = snapshot.to_dict()

    return {
        "uid": uid,
        "name": profile.get("displayName", ""),
        "email": profile.get("email", ""),
        "role": profile.get("role", ""),
    }


# Admin Role Check Dependency
async def require_admin_role(
    current_user: Annotated[dict, Depends(get_current_user_basic_auth)],
    settings: Annotated[Settings, Depends(get_app_settings)],
):
    # Check That User Has Adequate Permissions
    if current_user.get("role") not in settings.admin_roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User doesn't have sufficient privileges for this action",
        )

    # Passes Check Endpoint
    return current_user
