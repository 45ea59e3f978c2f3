import os
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from google.auth import default as google_auth_default
from google.cloud import firestore
from google.oauth2 import service_account

logger = structlog.get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/cloud-platform", "https://www.googleapis.com/auth/datastore"]


def _build_creds():
    key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    if key_path and os.path.exists(key_path):
        return service_account.Credentials.from_service_account_file(key_path, scopes=SCOPES)
    creds, _ = google_auth_default(scopes=SCOPES)
    return creds


def create_firestore_client(project: Optional[str] = None, database: Optional[str] = None) -> firestore.AsyncClient:
    """Build the async Firestore client used by every repository and tool"""

    kwargs: Dict[str, Any] = {"project": project or None}
    if database:
        kwargs["database"] = database
    if not os.environ.get("FIRESTORE_EMULATOR_HOST"):
        kwargs["credentials"] = _build_creds()

    logger.info("Creating Firestore client", project=project, database=database or "(default)")
    return firestore.AsyncClient(**kwargs)


def user_ref(db, user_id: str):
    return db.collection("users").document(user_id)


def modules_ref(db, user_id: str):
    return user_ref(db, user_id).collection("modules")


def module_ref(db, user_id: str, module_id: str):
    return modules_ref(db, user_id).document(module_id)


def entries_ref(db, user_id: str, module_id: str):
    return module_ref(db, user_id, module_id).collection("entries")


def conversation_ref(db, user_id: str, conversation_id: str):
    return user_ref(db, user_id).collection("conversations").document(conversation_id)


def to_iso(value: Any) -> Optional[str]:
    """ISO-8601 string for Firestore timestamps, None for anything else"""
    if isinstance(value, datetime):
        return value.isoformat()
    return None


def serialize_timestamps(data: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow copy of ``data`` with timestamp values rendered as ISO strings"""
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in data.items()
    }
