"""Local demo member for worker and CLI integration tests."""

from __future__ import annotations

import argparse
import sys
import time


def main(argv: list[str] | None = None) -> int:
    """Echo the prompt to stdout, optionally sleeping or failing first."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--stderr", default="")
    parser.add_argument("prompt", nargs="?", default="")
    args = parser.parse_args(argv)

    if args.sleep > 0:
        time.sleep(args.sleep)
    print(f"echo: {args.prompt}")
    if args.stderr:
        print(args.stderr, file=sys.stderr)
    return args.exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
