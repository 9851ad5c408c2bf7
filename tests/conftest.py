import os

# Settings are read at import time; tests never reach a real database.
os.environ.setdefault("DB_HOST", "localhost")
os.environ.setdefault("DB_PORT", "5432")
os.environ.setdefault("DB_NAME", "care_leads_test")
os.environ.setdefault("DB_USER", "care_leads")
os.environ.setdefault("DB_PASSWORD", "care_leads")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-for-signing-tokens-0123456789")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("WIZARD_MATCHING_DELAY", "0")
