"""
Application configuration.

Values come from environment variables (a local .env file is loaded first).
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Language model
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANALYSIS_MODEL = os.getenv("ANALYSIS_MODEL", "claude-sonnet-4-5-20250929")
ANALYSIS_MAX_TOKENS = int(os.getenv("ANALYSIS_MAX_TOKENS", "8192"))
ANALYSIS_MAX_RETRIES = int(os.getenv("ANALYSIS_MAX_RETRIES", "6"))

# Staging storage (Supabase)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")
STAGING_BUCKET = os.getenv("STAGING_BUCKET", "staging")

# Per-file cap applied by the normalizer (10 MiB)
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024
