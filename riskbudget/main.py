"""
Main entry point for riskbudget
"""

import sys
import traceback

from .core.framework import Framework
from .ui.console import Console
from .utils.logging_config import get_logger, setup_logging_from_config


def main():
    """Main entry point"""
    config_path = sys.argv[1] if len(sys.argv) > 1 else "config.yaml"
    try:
        framework = Framework(config_path)
        setup_logging_from_config(framework.config)

        framework.discover_modules()

        console = Console(framework)
        console.start()

    except KeyboardInterrupt:
        print("\n[!] Interrupted by user")
        sys.exit(0)
    except Exception as e:
        get_logger().log_error(e, operation="startup")
        print(f"[-] Fatal error: {str(e)}")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
