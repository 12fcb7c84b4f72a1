import os

from dotenv import load_dotenv

load_dotenv()
if os.path.exists(".env.local"):
    load_dotenv(".env.local", override=True)


class Config:
    """Analyzer configuration read from the environment."""

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    ANALYZER_LOCALE = os.getenv("ANALYZER_LOCALE", "en").lower()

    RULE_MAX_SUGGESTIONS = int(os.getenv("RULE_MAX_SUGGESTIONS", "100"))
    RULE_MIN_SEVERITY = os.getenv("RULE_MIN_SEVERITY", "INFO").upper()

    BASELINE_TTL_SECONDS = int(os.getenv("BASELINE_TTL_SECONDS", "3600"))
    BASELINE_REFRESH_INTERVAL_SECONDS = int(os.getenv("BASELINE_REFRESH_INTERVAL_SECONDS", "3600"))
    BASELINE_AUDIT_LOG_HOURS = int(os.getenv("BASELINE_AUDIT_LOG_HOURS", "168"))
    BASELINE_MIN_SAMPLE_SIZE = int(os.getenv("BASELINE_MIN_SAMPLE_SIZE", "30"))

    STARROCKS_HTTP_URL = os.getenv("STARROCKS_HTTP_URL", "http://localhost:8030")
    STARROCKS_USER = os.getenv("STARROCKS_USER", "root")
    STARROCKS_PASSWORD = os.getenv("STARROCKS_PASSWORD", "")

    SQS_QUEUE_URL = os.getenv("SQS_QUEUE_URL")
    AWS_REGION = os.getenv("AWS_REGION", "us-east-1")


config = Config()
