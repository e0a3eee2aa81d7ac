import os
import dotenv
import logging

dotenv.load_dotenv()

GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN")
GITHUB_LOGIN = os.environ.get("GITHUB_LOGIN")
GITHUB_ENDPOINT = os.environ.get("GITHUB_ENDPOINT", "https://api.github.com")

OVERRIDE_LOGGING = logging.getLevelName(os.environ.get("OVERRIDE_LOGGING", "WARNING"))

TELEGRAM_TOKEN = os.environ.get("TELEGRAM_TOKEN")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")

ALERT_PROVIDER = os.environ.get("ALERT_PROVIDER")

EVALUATION_DELAY = float(os.environ.get("EVALUATION_DELAY", 60))

POLL_INTERVAL = float(os.environ.get("POLL_INTERVAL", 300))

LOG_FETCH_RATE = float(os.environ.get("LOG_FETCH_RATE", 10))

HTTP_CACHE_SIZE = int(os.environ.get("HTTP_CACHE_SIZE", 500))
