from __future__ import annotations
import sys
import traceback
from typing import List, Optional

from mixerpack.plugin_system.cli import main as cli_main


def main(argv: Optional[List[str]] = None) -> int:
    try:
        return cli_main(argv)
    except KeyboardInterrupt:
        print("\nStopped by user.", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Unhandled exception: {e}", file=sys.stderr)
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
