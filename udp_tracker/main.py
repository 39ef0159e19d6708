import argparse
import signal
import logging
import sys

from . import config
from .alert import resolve_script
from .harness import Tracker, TrackerOptions
from .log import configure_logging
from .probe import RetryBudget

logger = logging.getLogger(__name__)

EPILOG = f"""\
retries:: 0 or <0 means retry forever
script:: the word '{config.NO_SCRIPT}' means no script to run

example: udp-tracker 231.7.7.7 9876 20 20 10000 0 10 {config.NO_SCRIPT}
"""


def _bounded_int(minimum, maximum=None):
    def parse(value):
        try:
            number = int(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
        if number < minimum or (maximum is not None and number > maximum):
            limit = f"{minimum}..{maximum}" if maximum is not None else f">= {minimum}"
            raise argparse.ArgumentTypeError(f"{number} out of range ({limit})")
        return number

    return parse


def build_parser():
    parser = argparse.ArgumentParser(
        prog="udp-tracker",
        description="Track UDP discovery broadcasts with passive listeners and active probes",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("group", help="Discovery group (multicast or broadcast) address")
    parser.add_argument("port", type=_bounded_int(1, 65535), help="Discovery group port")
    parser.add_argument("passive_threads", type=_bounded_int(0), help="Number of passive listeners")
    parser.add_argument("active_threads", type=_bounded_int(0), help="Number of active probes")
    parser.add_argument("timeout", type=_bounded_int(1), help="Silence / wait timeout in milliseconds")
    parser.add_argument("sleep", type=_bounded_int(0), help="Sleep before every probe cycle in milliseconds")
    # Any integer is valid: zero or negative selects the unbounded budget
    parser.add_argument("retries", type=int, help="Waits per probe cycle before giving up (<= 0 retries forever)")
    parser.add_argument("script", help="Alert script run on the first failed wait of a cycle")
    return parser


def parse_options(argv=None):
    args = build_parser().parse_args(argv)
    return TrackerOptions(
        group_address=args.group,
        port=args.port,
        passive_threads=args.passive_threads,
        active_threads=args.active_threads,
        timeout_ms=args.timeout,
        sleep_ms=args.sleep,
        retries=RetryBudget.from_count(args.retries),
        script=resolve_script(args.script),
    )


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]

    configure_logging()
    logger.info(f"Arguments:: {' '.join(argv)}")

    options = parse_options(argv)
    logger.info(
        f"Group :: {options.group_address} port :: {options.port} passive :: {options.passive_threads} "
        f"active :: {options.active_threads} timeout :: {options.timeout_ms} sleep :: {options.sleep_ms} "
        f"retries :: {options.retries} script :: {options.script or config.NO_SCRIPT}"
    )

    tracker = Tracker(options)

    # Handle graceful shutdown on Ctrl+C / SIGTERM
    def shutdown(signum, frame):
        logger.info("Shutting down tracker...")
        tracker.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        tracker.start()
    except Exception:
        logger.exception("Failed to start passive listeners")
        sys.exit(1)

    tracker.monitor.run()


if __name__ == "__main__":
    main()
