from nedapay.core.config import get_settings

settings = get_settings()

app = "nedapay.main:app"
host = settings.BACKEND_HOST
port = settings.BACKEND_PORT
log_level = "debug" if settings.DEBUG else "info"
workers = 1 if settings.DEBUG else 2
