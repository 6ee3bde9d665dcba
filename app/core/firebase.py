"""Firebase Admin SDK setup for push notifications."""

import json
import os

import firebase_admin
from firebase_admin import credentials
from structlog import get_logger

logger = get_logger(__name__)

_firebase_app: firebase_admin.App | None = None


def load_credentials(
    firebase_credentials_path: str | None = None,
    firebase_config_json: str | None = None,
) -> credentials.Certificate | None:
    """
    Resolve service account credentials.

    A raw JSON string wins over a file path. Returns None when neither is
    usable, leaving the SDK to find application default credentials.
    """
    if firebase_config_json:
        logger.info("firebase_credentials_from_json")
        return credentials.Certificate(json.loads(firebase_config_json))

    if firebase_credentials_path:
        if os.path.exists(firebase_credentials_path):
            logger.info("firebase_credentials_from_file", path=firebase_credentials_path)
            return credentials.Certificate(firebase_credentials_path)
        logger.warning("firebase_credentials_file_missing", path=firebase_credentials_path)

    return None


def initialize_firebase(
    firebase_credentials_path: str | None = None,
    firebase_config_json: str | None = None,
) -> firebase_admin.App:
    """
    Initialize the Firebase app used by the FCM notification sender.

    Safe to call more than once; later calls return the existing app.
    """
    global _firebase_app

    if _firebase_app is not None:
        return _firebase_app

    try:
        cred = load_credentials(firebase_credentials_path, firebase_config_json)
        _firebase_app = firebase_admin.initialize_app(cred)
    except Exception as e:
        logger.error("firebase_init_failed", error=str(e))
        raise

    logger.info(
        "firebase_initialized",
        default_credentials=cred is None,
        project_id=_firebase_app.project_id,
    )
    return _firebase_app
