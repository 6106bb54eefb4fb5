import os

from dotenv import load_dotenv

# Load environment variables if present
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tabular_analytics.db")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() in ("1", "true", "yes")

DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "100"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "1000"))
