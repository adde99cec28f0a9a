from __future__ import annotations

"""
Command Line Interface (CLI) Application Controller.

Orchestrates the CLI lifecycle: logging bootstrap, configuration merging
(defaults and CLI overrides), signal-driven cancellation, engine execution
and JSON rendering of the resulting Atlantis projects on stdout.
"""

import json
import signal
import sys
import threading
from typing import Any, Dict, List, Optional

from tgatlantis.core.pipeline.engine import ResolutionCaches, run_generation
from tgatlantis.core.pipeline.stages.validator import validate_config
from tgatlantis.domain.config import GenerateConfig, get_default_config
from tgatlantis.domain.constants import ATLANTIS_CONFIG_VERSION
from tgatlantis.domain.errors import CancellationError, CycleError, TgAtlantisError
from tgatlantis.domain.graph_models import GenerationResult
from tgatlantis.infra.logging import LoggingConfig, configure_logging, get_logger
from tgatlantis.interface.cli import args as cli_args

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


# -----------------------------------------------------------------------------
# ENTRYPOINT ORCHESTRATOR
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """
    Execute the CLI workflow.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        int: 0 on success, 1 on project or run errors, 2 on invalid input,
             130 when interrupted.
    """
    parser = cli_args.build_parser()
    args = parser.parse_args(argv)

    configure_logging(LoggingConfig.for_cli(debug=args.debug, log_file=args.log_file))
    logger.debug("CLI execution initiated. Resolving configuration...")

    raw_conf = dict(get_default_config())
    raw_conf.update(cli_args.args_to_overrides(args))

    try:
        clean_conf, warnings = validate_config(raw_conf, strict=False)
    except (TypeError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_USAGE
    for w in warnings:
        logger.warning(f"Configuration Constraint: {w}")

    if args.dump_config:
        print(json.dumps(clean_conf, ensure_ascii=False, indent=2))
        return EXIT_OK

    cfg = GenerateConfig.from_dict(clean_conf)
    caches = ResolutionCaches()
    cancellation_event = threading.Event()
    previous_handlers = _install_signal_handlers(cancellation_event)

    try:
        result = run_generation(cfg, cancellation_event=cancellation_event, caches=caches)
    except (CancellationError, KeyboardInterrupt):
        print("Interrupted: generation cancelled.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except CycleError as e:
        logger.error(str(e))
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except TgAtlantisError as e:
        logger.error(f"Generation aborted: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        _restore_signal_handlers(previous_handlers)
        caches.reset()

    if not result.ok:
        print(f"ERROR: {result.error}", file=sys.stderr)
        return EXIT_USAGE

    print(json.dumps(render_atlantis_config(result, cfg), ensure_ascii=False, indent=2))
    _print_project_errors(result)
    return EXIT_FAILURE if result.errors else EXIT_OK


# -----------------------------------------------------------------------------
# VIEW RENDERING
# -----------------------------------------------------------------------------

def render_atlantis_config(result: GenerationResult, cfg: GenerateConfig) -> Dict[str, Any]:
    """
    Build the Atlantis repo-config payload for a successful run.

    Args:
        result: Generation result.
        cfg: Configuration of the run.

    Returns:
        Dict[str, Any]: JSON-serializable payload.
    """
    return {
        "version": ATLANTIS_CONFIG_VERSION,
        "automerge": cfg.automerge,
        "parallel_plan": cfg.parallel,
        "parallel_apply": cfg.parallel,
        "projects": [p.to_dict() for p in result.projects],
    }


def _print_project_errors(result: GenerationResult) -> None:
    for path in sorted(result.errors):
        print(f"ERROR: {path}: {result.errors[path]}", file=sys.stderr)


# -----------------------------------------------------------------------------
# SIGNAL HANDLING
# -----------------------------------------------------------------------------

def _install_signal_handlers(event: threading.Event) -> Dict[int, Any]:
    """Route SIGINT/SIGTERM to the cancellation event (main thread only)."""
    previous: Dict[int, Any] = {}
    if threading.current_thread() is not threading.main_thread():
        return previous

    def _handler(signum: int, _frame: Any) -> None:
        logger.warning(f"Received signal {signum}; cancelling generation.")
        event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, _handler)
    return previous


def _restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


# -----------------------------------------------------------------------------
# CLI ENTRYPOINT
# -----------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
