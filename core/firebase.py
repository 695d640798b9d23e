import json
import os
from functools import lru_cache

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials, firestore
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def initialize_firebase():
    """Initialize Firebase Admin SDK with production-ready credential handling"""

    # Already initialized (e.g. by a worker reload)
    if firebase_admin._apps:
        return firebase_admin.get_app()

    project_options = {}
    if os.getenv("FIREBASE_PROJECT_ID"):
        project_options["projectId"] = os.getenv("FIREBASE_PROJECT_ID")

    # Method 1: Service Account Key from Environment Variable (Recommended for production)
    service_account_key_json = os.getenv("FIREBASE_SERVICE_ACCOUNT_KEY")
    if service_account_key_json:
        try:
            # Parse the JSON string from environment variable
            service_account_info = json.loads(service_account_key_json)
            cred = credentials.Certificate(service_account_info)
            app = firebase_admin.initialize_app(cred, project_options or None)
            print("Firebase Admin SDK initialized with Service Account Key from environment variable.")
            return app
        except (json.JSONDecodeError, ValueError) as e:
            print(f"Error parsing FIREBASE_SERVICE_ACCOUNT_KEY: {e}")

    # Method 2: Service Account Key File (for local development only)
    service_account_key_path = os.getenv("FIREBASE_SERVICE_ACCOUNT_KEY_PATH")
    if service_account_key_path and os.path.exists(service_account_key_path):
        cred = credentials.Certificate(service_account_key_path)
        app = firebase_admin.initialize_app(cred, project_options or None)
        print("Firebase Admin SDK initialized with Service Account Key from file path.")
        return app

    # Method 3: Application Default Credentials (GOOGLE_APPLICATION_CREDENTIALS or cloud metadata)
    app = firebase_admin.initialize_app(options=project_options or None)
    print("Firebase Admin SDK initialized with Application Default Credentials.")
    return app


# Initialized on first admin request, so scanning works without Firebase configured
@lru_cache
def get_firestore_client():
    initialize_firebase()
    return firestore.client()


def verify_id_token(token: str) -> dict:
    initialize_firebase()
    return firebase_auth.verify_id_token(token)
