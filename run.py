#!/usr/bin/env python3
# Entry point for running the VibeCanvas studio server

import argparse
import logging

from canvas_inference.config import load_settings
from canvas_studio.app import build_studio, create_app


def main():
    parser = argparse.ArgumentParser(description='VibeCanvas studio backend')
    parser.add_argument('--config', default=None, help='YAML/JSON settings file')
    parser.add_argument('--host', default='0.0.0.0')
    parser.add_argument('--port', type=int, default=5000)
    parser.add_argument('--debug', action='store_true')
    args = parser.parse_args()

    settings = load_settings(args.config)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logger = logging.getLogger(__name__)
    logger.info("Starting VibeCanvas studio on %s:%d", args.host, args.port)

    app = create_app(studio=build_studio(settings))
    # Reloader would start a second process with its own event loop thread
    app.run(host=args.host, port=args.port, debug=args.debug, use_reloader=False, threaded=True)


if __name__ == '__main__':
    main()
