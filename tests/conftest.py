import os

# Keep imports of the app from creating ./data or scheduling repair jobs.
os.environ.setdefault("EXPENSES_DATABASE_URL", "sqlite://")
os.environ.setdefault("EXPENSES_SUMMARY_REPAIR_MINUTES", "0")
os.environ.setdefault("EXPENSES_AUTH_SECRET", "test-secret")
