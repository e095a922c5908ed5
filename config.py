import os
from dotenv import load_dotenv

load_dotenv()

# Supabase Configuration
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
DATABASE_URL = os.getenv("DATABASE_URL")

# "supabase" for the hosted database, "memory" for local development
STORE_BACKEND = os.getenv("STORE_BACKEND", "supabase").lower()

# JWT Configuration
SECRET_KEY = os.getenv("SECRET_KEY", "passitpal-dev-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# App Configuration
APP_NAME = "PassItPal - Fitness Pass Marketplace"
APP_VERSION = "1.0.0"
APP_DESCRIPTION = "Peer-to-peer marketplace for reselling unused fitness-pass subscriptions"
DEBUG = os.getenv("DEBUG", "true").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3000")

# Realtime Configuration
SOCKET_REAUTH_INTERVAL_SECONDS = int(os.getenv("SOCKET_REAUTH_INTERVAL_SECONDS", "300"))
SOCKET_EMIT_REJECTIONS = os.getenv("SOCKET_EMIT_REJECTIONS", "false").lower() == "true"

# Limits
MESSAGE_TO_SELLER_MAX_LENGTH = 500
NOTIFICATION_PREVIEW_CHARS = 50
