"""Allow ``python -m motion_input`` to launch the motion input CLI."""

from __future__ import annotations

import sys


def main() -> None:
    from motion_input import run

    raise SystemExit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
