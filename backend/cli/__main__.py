from __future__ import annotations

import sys

from . import reconcile_cli


def main() -> int:
    return reconcile_cli.main()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
