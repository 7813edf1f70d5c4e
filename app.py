import logging
import re
import signal
import sys

from flask import Flask, Response, request
from opentelemetry import trace

import config
from logging_config import setup_logging
from telemetry import (
    create_request_counter,
    init_meter,
    init_tracer,
    instrumented,
    shutdown_telemetry,
)

logger = logging.getLogger(__name__)

# optional sign, leading zeros, then at most 19 significant ASCII digits
INT_PATTERN = re.compile(r"([+-]?)0*([0-9]{1,19})")
INT64_MIN = -2 ** 63
INT64_MAX = 2 ** 63 - 1

# every path answers any method, like a plain handler mount
METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def text_response(body, status=200):
    return Response(body, status=status, mimetype="text/plain")


def parse_int(value):
    """Parse a signed 64-bit decimal integer, or return None."""
    if value is None:
        return None
    match = INT_PATTERN.fullmatch(value)
    if match is None:
        return None
    number = int(match.group(1) + match.group(2))
    if not INT64_MIN <= number <= INT64_MAX:
        return None
    return number


def read_operands():
    """Return (num1, num2) from the query string, or None if either is not an integer."""
    num1 = parse_int(request.args.get("num1"))
    num2 = parse_int(request.args.get("num2"))
    if num1 is None or num2 is None:
        return None
    return num1, num2


def record(message):
    logger.info(message)
    trace.get_current_span().add_event(message)


########################################## handlers ##########################################

def hello():
    response = text_response("Hello, World!")
    record("Handled /hello request")
    return response


def sum_numbers():
    operands = read_operands()
    if operands is None:
        return text_response("Invalid input", 400)

    num1, num2 = operands
    result = num1 + num2
    response = text_response(f"Sum: {result}")
    record(f"Handled /sum request: {num1} + {num2} = {result}")
    return response


def subtract_numbers():
    operands = read_operands()
    if operands is None:
        return text_response("Invalid input", 400)

    num1, num2 = operands
    result = num1 - num2
    response = text_response(f"Subtraction: {result}")
    record(f"Handled /subtract request: {num1} - {num2} = {result}")
    return response


# path, span name, view
ROUTES = [
    ("/hello", "helloHandler", hello),
    ("/sum", "sumHandler", sum_numbers),
    ("/subtract", "subtractHandler", subtract_numbers),
]


def create_app(tracer_provider, meter_provider):
    app = Flask(__name__)

    tracer = tracer_provider.get_tracer(config.SERVICE_NAME)
    meter = meter_provider.get_meter(config.SERVICE_NAME)
    request_counter = create_request_counter(meter)

    for rule, name, view in ROUTES:
        app.add_url_rule(
            rule,
            endpoint=name,
            view_func=instrumented(name, tracer, request_counter)(view),
            methods=METHODS,
            provide_automatic_options=False,
        )

    return app


########################################## bootstrap ##########################################

def _exit_on_sigterm(signum, frame):
    # lets the finally block in main() flush telemetry
    sys.exit(0)


def main():
    setup_logging(config.LOG_LEVEL)

    try:
        tracer_provider = init_tracer(config.COLLECTOR_ENDPOINT)
    except Exception as e:
        logger.critical("failed to initialize tracer: %s", e)
        sys.exit(1)

    try:
        meter_provider = init_meter(config.COLLECTOR_ENDPOINT)
    except Exception as e:
        logger.critical("failed to initialize meter: %s", e)
        sys.exit(1)

    signal.signal(signal.SIGTERM, _exit_on_sigterm)

    app = create_app(tracer_provider, meter_provider)
    try:
        logger.info("Server is listening on port %d...", config.HTTP_PORT)
        app.run(host=config.HTTP_HOST, port=config.HTTP_PORT, threaded=True)
    except OSError as e:
        logger.critical("Could not start server: %s", e)
        sys.exit(1)
    finally:
        shutdown_telemetry(tracer_provider, meter_provider)


if __name__ == "__main__":
    main()
