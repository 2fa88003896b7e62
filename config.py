import os
from dotenv import load_dotenv

load_dotenv()

DATA_DIR = os.getenv("INVOICE_DATA_DIR", "data")
LOCALE = os.getenv("INVOICE_LOCALE", "en_US")
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")

# Optional remote persistence, both must be set
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
REMOTE_TIMEOUT = float(os.getenv("REMOTE_TIMEOUT", "10"))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
