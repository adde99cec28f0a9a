from __future__ import annotations

"""
Main Entry Point and Global Supervisor.

Installs a global exception hook so that any crash escaping the CLI
controller is logged with its stack trace and turned into exit code 1,
then delegates to the CLI application.
"""

import logging
import sys
import traceback
from typing import Any, List, Optional


# -----------------------------------------------------------------------------
# GLOBAL SUPERVISOR (EXCEPTION HANDLING)
# -----------------------------------------------------------------------------

def global_exception_handler(exctype: type, value: BaseException, tb: Any) -> None:
    """
    Log an unhandled exception and print its trace to stderr.

    Args:
        exctype: Exception class.
        value: Exception instance.
        tb: Traceback object.
    """
    stack_trace = "".join(traceback.format_exception(exctype, value, tb))

    logger = logging.getLogger("tgatlantis.supervisor")
    logger.critical(f"FATAL EXCEPTION DETECTED: {value}\n{stack_trace}")

    print("\n" + "=" * 80, file=sys.stderr)
    print("CRITICAL ERROR (TGATLANTIS)", file=sys.stderr)
    print("=" * 80, file=sys.stderr)
    print(stack_trace, file=sys.stderr)


# -----------------------------------------------------------------------------
# EXECUTION ROUTING
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the CLI under the global supervisor.

    Returns:
        int: Process exit code.
    """
    sys.excepthook = global_exception_handler
    try:
        from tgatlantis.interface.cli.app import main as cli_main
        return cli_main(argv)
    except Exception as e:
        global_exception_handler(type(e), e, e.__traceback__)
        return 1


if __name__ == "__main__":
    sys.exit(main())
