import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev_secret")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "fairstall.sqlite3")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "database" (stored_blobs table) or "memory"
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "database")

    # fabric images
    UPLOAD_FOLDER = os.path.join(BASE_DIR, "fairstall", "static", "uploads")
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024  # 5 MB

    # dates/times in CSV rows and order numbers
    DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "UTC")

    # spreadsheet export endpoint
    SHEETS_ENDPOINT_URL = os.getenv("SHEETS_ENDPOINT_URL", "")
    SHEETS_SHEET_ID = os.getenv("SHEETS_SHEET_ID", "")
    SHEETS_SHEET_NAME = os.getenv("SHEETS_SHEET_NAME", "Sales")
    SHEETS_AUTH_TOKEN = os.getenv("SHEETS_AUTH_TOKEN", "")
    SHEETS_TIMEOUT = float(os.getenv("SHEETS_TIMEOUT", "15"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
