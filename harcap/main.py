"""
Command line entry point for harcap.
"""

import asyncio
import sys
from typing import Any

from harcap.errors import HarcapError, InvalidOptionsError
from harcap.utils.config import RunOptions, get_settings
from harcap.utils.logging import configure_logging, get_logger


def parse_header(header: str) -> tuple[str, str]:
    """Split a ``Name: value`` header at the first colon."""
    name, sep, value = header.partition(":")
    if not sep or not name.strip():
        raise InvalidOptionsError(
            f"Invalid header {header!r}, expected 'Name: value'", field="headers"
        )
    return name.strip(), value.strip()


def join_delay_args(args: list[str]) -> list[str]:
    """Rewrite ``-d VALUE`` as ``--delay=VALUE``.

    Block rules start with ``-1:``, which argparse would otherwise take for an
    option flag.
    """
    joined: list[str] = []
    rest = iter(args)
    for arg in rest:
        if arg == "--":
            joined.append(arg)
            joined.extend(rest)
            break
        if arg in ("-d", "--delay"):
            value = next(rest, None)
            joined.append(arg if value is None else f"--delay={value}")
        else:
            joined.append(arg)
    return joined


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="harcap",
        description="Capture a HAR-like network log of a page load under simulated network conditions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Record a page load to out.json
    harcap https://example.com/ -o out.json

    # Delay stylesheets by 300 ms and block analytics
    harcap https://example.com/ -d '300:\\.css$' -d -1:analytics -o out.json

    # Hold the first two font requests, screenshot every 100 ms
    harcap https://example.com/ -d '0:\\.woff2?$' -M 2 -i 100 -s 'shot-%%d.jpg'

    # List device models available for emulation
    harcap -m help
        """,
    )
    parser.add_argument("url", nargs="?", help="Page URL to measure")
    parser.add_argument(
        "-d", "--delay",
        action="append",
        default=[],
        metavar="MS:REGEX",
        help="Delay matching requests by MS (0 = hold, -1 = block). Repeatable",
    )
    parser.add_argument(
        "-M", "--max-match",
        type=int,
        metavar="N",
        help="Apply each rule to at most N requests (0 = unlimited)",
    )
    parser.add_argument(
        "-i", "--interval",
        type=int,
        metavar="MS",
        help="Screenshot capture interval (0 = single screenshot after load)",
    )
    parser.add_argument(
        "-s", "--screenshot",
        metavar="PATH",
        help="Screenshot path, %%d is replaced by the elapsed ms (ex: image-%%d.jpg)",
    )
    parser.add_argument(
        "-p", "--plugin",
        action="append",
        default=[],
        metavar="MODULE[:ATTR]",
        help="Load a plugin. Repeatable",
    )
    parser.add_argument(
        "-n", "--prewarm",
        type=int,
        metavar="N",
        help="Fetch the page N times before measurement",
    )
    parser.add_argument(
        "-T", "--timeout",
        type=int,
        metavar="MS",
        help="Navigation timeout (0 = none)",
    )
    parser.add_argument("-o", "--outfile", help="Write the JSON artifact to this path")
    parser.add_argument("-t", "--trace", help="Capture a browser trace to this path")
    parser.add_argument("-e", "--endpoint", help="Connect to a running browser (CDP URL)")
    parser.add_argument(
        "-L", "--headless",
        action="store_true",
        default=None,
        help="Run the launched browser headless",
    )
    parser.add_argument(
        "-C", "--chrome",
        action="append",
        default=[],
        metavar="ARG",
        help="Pass an argument to the browser. Repeatable",
    )
    parser.add_argument(
        "-H", "--header",
        action="append",
        default=[],
        metavar="NAME:VALUE",
        help="Add an HTTP header. Repeatable",
    )
    parser.add_argument(
        "-c", "--cache",
        action="store_true",
        default=None,
        help="Keep the browser cache enabled",
    )
    parser.add_argument(
        "-f", "--fullpage",
        action="store_true",
        default=None,
        help="Take full-page screenshots",
    )
    parser.add_argument("-m", "--model", help="Emulate a device model ('help' to list)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def options_from_args(parsed: Any) -> RunOptions:
    """Build run options from parsed arguments over the settings defaults."""
    from pydantic import ValidationError

    settings = get_settings()
    headers = dict(parse_header(h) for h in parsed.header)
    chrome_args = [*settings.browser.chrome_args, *parsed.chrome] if parsed.chrome else None

    try:
        return RunOptions.from_settings(
            settings,
            parsed.url,
            delays=parsed.delay,
            max_match=parsed.max_match,
            interval_ms=parsed.interval,
            screenshot=parsed.screenshot,
            full_page=parsed.fullpage,
            plugins=parsed.plugin,
            prewarm=parsed.prewarm,
            timeout_ms=parsed.timeout,
            outfile=parsed.outfile,
            trace=parsed.trace,
            endpoint=parsed.endpoint,
            headless=parsed.headless,
            chrome_args=chrome_args,
            headers=headers,
            cache_enabled=parsed.cache,
            device=parsed.model,
        )
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise InvalidOptionsError(f"{field}: {first['msg']}", field=field) from e


async def print_devices() -> None:
    from harcap.browser.session import list_devices

    print("# supported models")
    for name in await list_devices():
        print(name)


def main(args: list[str] | None = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    parsed = parser.parse_args(join_delay_args(sys.argv[1:] if args is None else args))

    settings = get_settings()
    configure_logging(verbose=parsed.verbose)
    logger = get_logger(__name__)

    if parsed.model == "help":
        asyncio.run(print_devices())
        return 0

    if not parsed.url:
        parser.print_usage(sys.stderr)
        print("harcap: error: the following arguments are required: url", file=sys.stderr)
        return 2

    from harcap.runner import HarcapRunner

    try:
        options = options_from_args(parsed)
        result = asyncio.run(HarcapRunner(options, settings).run())
    except HarcapError as e:
        logger.error("Run aborted", **e.to_dict())
        return 2
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    except Exception as e:
        logger.exception("Unexpected failure", error=str(e))
        return 1

    if not result.navigation.ok:
        logger.warning("Page did not finish loading", error=result.navigation.error)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
