"""Command-line entry point for the CVChat Streamlit UI."""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from cvchat.config import config
from cvchat.errors import CVChatError
from cvchat.knowledge import KnowledgeBase

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_APP = PROJECT_ROOT / "app.py"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="Launch the CVChat Streamlit web application.",
    )
    parser.add_argument(
        "--app",
        type=Path,
        default=DEFAULT_APP,
        help="Path to the Streamlit script (default: app.py).",
    )
    parser.add_argument(
        "--knowledge-base",
        type=Path,
        default=config.KNOWLEDGE_BASE_PATH,
        help="Knowledge base JSON file (default: KNOWLEDGE_BASE_PATH).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8501,
        help="Port for the Streamlit server (default: 8501).",
    )
    parser.add_argument(
        "--address",
        default="localhost",
        help="Bind address for the Streamlit server (default: localhost).",
    )
    parser.add_argument(
        "--show",
        dest="headless",
        action="store_false",
        help="Open Streamlit in a browser window instead of headless mode.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate configuration and the knowledge base, then exit.",
    )
    parser.set_defaults(headless=True)
    return parser.parse_args(argv)


def resolve_path(path: Path) -> Path:
    """Resolve ``path`` against the project root unless absolute."""  # noqa: DOC201
    return (path if path.is_absolute() else PROJECT_ROOT / path).resolve()


def check_knowledge_base(path: Path, logger: Logger) -> bool:
    """Load the knowledge base once to report problems before launch."""  # noqa: DOC201
    try:
        knowledge_base = KnowledgeBase.load(path)
    except (OSError, ValueError, CVChatError):
        logger.exception("Knowledge base %s could not be loaded", path)
        return False
    if not len(knowledge_base):
        logger.error("Knowledge base %s has no entries", path)
        return False
    logger.info(
        "Knowledge base OK: %d entries in %d categories (vectors: %s)",
        len(knowledge_base),
        len(knowledge_base.categories()),
        knowledge_base.has_vectors,
    )
    return True


def build_streamlit_command(
    script_path: Path,
    *,
    port: int,
    headless: bool,
    address: str,
) -> list[str]:
    """Construct the streamlit CLI invocation."""  # noqa: DOC201
    return [
        sys.executable,
        "-m",
        "streamlit",
        "run",
        str(script_path),
        "--server.port",
        str(port),
        "--server.address",
        address,
        "--server.headless",
        "true" if headless else "false",
    ]


def run_streamlit(
    command: Sequence[str], knowledge_base: Path, logger: Logger
) -> int:
    """Execute the streamlit command and return its exit code."""  # noqa: DOC201
    env = {**os.environ, "KNOWLEDGE_BASE_PATH": str(knowledge_base)}
    try:
        result = subprocess.run(
            command,
            check=False,
            cwd=PROJECT_ROOT,
            env=env,
        )
    except KeyboardInterrupt:
        logger.info("CVChat stopped by user")
        return 0
    except OSError:
        logger.exception("Unable to launch Streamlit")
        return 1
    return result.returncode


def main(argv: Sequence[str] | None = None) -> int:
    """Validate configuration and launch the Streamlit UI."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()
    logger = config.get_logger(__name__)

    try:
        config.validate()
    except ValueError:
        logger.exception("Configuration invalid")
        return 1

    knowledge_base = resolve_path(args.knowledge_base)
    if not check_knowledge_base(knowledge_base, logger):
        return 1
    if args.check:
        return 0

    # production never opens a browser window
    headless = args.headless or config.is_production()
    script_path = resolve_path(args.app)
    if not script_path.exists():
        logger.error("Streamlit script not found: %s", script_path)
        return 1

    logger.info(
        "Starting CVChat at http://%s:%s (headless=%s, primary engine %s)",
        args.address,
        args.port,
        headless,
        config.PRIMARY_ENGINE,
    )

    command = build_streamlit_command(
        script_path,
        port=args.port,
        headless=headless,
        address=args.address,
    )

    return_code = run_streamlit(command, knowledge_base, logger)
    if return_code != 0:
        logger.error("Streamlit exited with status %s", return_code)
    return return_code


if __name__ == "__main__":
    sys.exit(main())
