from pathlib import Path

from decouple import config

# -------------------------------
# Diretórios base
# -------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent

# -------------------------------
# Logging
# -------------------------------
LOG_LEVEL = config("LOG_LEVEL", default="INFO")
JSON_LOGS = config("JSON_LOGS", default=False, cast=bool)

# -------------------------------
# Record store (tabelas remotas + feed de mudanças)
# -------------------------------
RECORD_STORE_BACKEND = config("RECORD_STORE_BACKEND", default="memory")  # memory | postgrest
POSTGREST_URL        = config("POSTGREST_URL", default="http://localhost:3000")
POSTGREST_API_KEY    = config("POSTGREST_API_KEY", default="")
POSTGREST_TIMEOUT    = config("POSTGREST_TIMEOUT", default=10.0, cast=float)

# -------------------------------
# Regras de negócio / apresentação
# -------------------------------
REFERENCE_TIMEZONE = config("REFERENCE_TIMEZONE", default="America/Sao_Paulo")
CURRENCY_SYMBOL    = config("CURRENCY_SYMBOL", default="R$")

# -------------------------------
# Automações (webhooks n8n etc.)
# -------------------------------
WEBHOOK_TIMEOUT = config("WEBHOOK_TIMEOUT", default=10.0, cast=float)
