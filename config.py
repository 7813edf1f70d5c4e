import os

from dotenv import load_dotenv

load_dotenv()


SERVICE_NAME = "http-server"

# OTLP/gRPC collector, plaintext
COLLECTOR_ENDPOINT = os.getenv("COLLECTOR_ENDPOINT", "localhost:4317")

METRIC_EXPORT_INTERVAL_MILLIS = 10000
SHUTDOWN_TIMEOUT_MILLIS = int(os.getenv("SHUTDOWN_TIMEOUT_MILLIS", "5000"))

HTTP_HOST = os.getenv("HTTP_HOST", "0.0.0.0")
HTTP_PORT = int(os.getenv("HTTP_PORT", "8080"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
