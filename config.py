import os

from dotenv import load_dotenv

load_dotenv()

APP_NAME = "Village Connect API"

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "village_connect")
# Multi-document transactions need a replica set
USE_TRANSACTIONS = os.getenv("USE_TRANSACTIONS", "false").lower() in ("1", "true", "yes")

# Tokens
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change")
JWT_ALG = "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", 60 * 24 * 7))  # 7 days

# CORS whitelist
FRONTEND_URL = os.getenv("FRONTEND_URL")
ALLOWED_ORIGINS = [
    origin
    for origin in [
        FRONTEND_URL,
        "https://village-connect-problem-solution.vercel.app",
        "http://localhost:3000",
    ]
    if origin
]

# Default admin, created at startup when both email and password are set
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Administrator")
ADMIN_VILLAGE = os.getenv("ADMIN_VILLAGE", "Headquarters")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 5000))

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 200
