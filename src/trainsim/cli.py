"""Command-line entry point: ``trainsim`` / ``python -m trainsim``."""
from __future__ import annotations
import sys
from typing import Sequence

from trainsim.config import parse_args
from trainsim.errors import ConfigurationError, TrainSimError
from trainsim.log_cfg import LogConfig, logger
from trainsim.report import format_batch, format_replication
from trainsim.runner import run

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def main(argv: Sequence[str] | None = None) -> int:
    try:
        config, args = parse_args(argv)
    except ConfigurationError as exc:
        print(f"trainsim: {exc}", file=sys.stderr)
        return EXIT_USAGE

    file_only = args.log_file is not None and not args.trace
    log_cfg = LogConfig(enabled=args.trace or args.log_file is not None, console=not file_only,
                        file_path=args.log_file)

    multiple = config.replications > 1

    def _print_replication(ctx, result):
        print(format_replication(result, show_confidence=multiple))
        print()

    try:
        result = run(config, on_replication=_print_replication)
    except TrainSimError as exc:
        logger.error("trainsim: %s", exc)
        print(f"trainsim: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        log_cfg.close()

    if multiple:
        print(format_batch(result))
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
