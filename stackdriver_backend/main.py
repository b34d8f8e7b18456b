import argparse
import os
import sys

import uvicorn

from .app import create_app
from .config_loader import ConfigError, build_settings
from .logging_utils import get_logger


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Forward statsd flushes to the Stackdriver gateway")
    parser.add_argument("--config", default=os.getenv("STATSD_CONFIG"), help="statsd config file (JSON or YAML)")
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8126")))
    args = parser.parse_args(argv)

    log = get_logger("stackdriver.main")
    try:
        settings = build_settings(args.config)
    except ConfigError as e:
        log.error("config.invalid", extra={"error": str(e)})
        return 1

    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port, log_level="debug" if settings.debug else "info")
    return 0


if __name__ == "__main__":
    sys.exit(main())
