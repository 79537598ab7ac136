import os

# Must be set before app modules read settings or configure logging
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("REPORT_DIR", "./reports-test")
