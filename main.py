#!/usr/bin/env python3
"""
sqlsim - an in-memory SQL engine for practicing queries
Run this file to start the API server
"""

import argparse
import logging

from sqlsim import config


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Start the sqlsim API server')
    parser.add_argument('--host', default=config.API_HOST,
                        help=f'Interface to bind (default: {config.API_HOST})')
    parser.add_argument('--port', type=int, default=config.API_PORT,
                        help=f'Port to listen on (default: {config.API_PORT})')
    parser.add_argument('--debug', action='store_true', default=config.DEBUG,
                        help='Enable Flask debug mode')
    parser.add_argument('--log-level', default=config.LOG_LEVEL,
                        help=f'Logging level (default: {config.LOG_LEVEL})')
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format=config.LOG_FORMAT)

    from api.server import app
    logging.getLogger(__name__).info("Starting API server on http://%s:%d", args.host, args.port)
    app.run(host=args.host, port=args.port, debug=args.debug, use_reloader=False)


if __name__ == '__main__':
    main()
