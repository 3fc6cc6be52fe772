"""
main.py: JEE Main CBT entry point

  python main.py serve [--host H] [--port P]   run the API server
  python main.py import [DIR]                  bulk-load question set JSON files
"""

import argparse
import logging
import os
import sys

from config import DEFAULT_HOST, DEFAULT_PORT, LOG_FILE, QUESTION_DIR

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    try:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            handlers=[
                logging.FileHandler(LOG_FILE, encoding='utf-8'),
                logging.StreamHandler(sys.stdout)
            ]
        )
    except PermissionError:
        # log file not writable, console only
        logging.basicConfig(level=logging.INFO)


def _serve(args: argparse.Namespace) -> int:
    import uvicorn
    from api.app import create_app

    logger.info(f"Uvicorn server starting on {args.host}:{args.port}")
    uvicorn.run(create_app(), host=args.host, port=args.port, log_level="info")
    return 0


def _import(args: argparse.Namespace) -> int:
    from jee_mains_cbt.db.database import Database
    from jee_mains_cbt.services.ingestion_service import import_directory

    if not os.path.isdir(args.directory):
        logger.error(f"Question directory not found: {args.directory}")
        return 1

    db = Database()
    db.create_all()
    report = import_directory(db, args.directory)

    for result in report.imported:
        logger.info(f"Imported {result.question_count} questions for {result.year} {result.slot}")
    for name, message in report.failed.items():
        logger.error(f"Failed to import {name}: {message}")

    logger.info(f"Import finished: {len(report.imported)} imported, {len(report.failed)} failed")
    return 1 if report.failed else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="JEE Main CBT attempt and scoring service")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default=DEFAULT_HOST)
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve.set_defaults(func=_serve)

    imp = sub.add_parser("import", help="Import YYYY_Mon_DD_Shift_N.json question files")
    imp.add_argument("directory", nargs="?", default=QUESTION_DIR)
    imp.set_defaults(func=_import)

    args = parser.parse_args(argv)
    _setup_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
