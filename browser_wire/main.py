"""
Command-line driver: launch a browser, drive one page, optionally print it.

    browser-wire https://example.com --click "a.more" --pdf out.pdf
    browser-wire https://example.com --endpoint ws://127.0.0.1:9222/devtools/browser/<id>

Without --endpoint a browser is launched (see launcher.LaunchConfig for the
WIRE_BROWSER_* environment variables) and stopped again on exit.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .config import WireConfig
from .errors import WireError
from .launcher import BrowserLauncher, LaunchConfig
from .pdf import PdfWriter
from .session import WireSession

logger = logging.getLogger("browser_wire.main")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="browser-wire", description="Drive a browser over CDP or WebDriver BiDi.")
    parser.add_argument("url", help="Page to open.")
    parser.add_argument("--endpoint", help="Attach to an existing websocket endpoint instead of launching.")
    parser.add_argument("--browser", choices=["chromium", "firefox"], help="Browser to launch (default: chromium).")
    parser.add_argument(
        "--readiness",
        choices=["none", "interactive", "complete"],
        default="complete",
        help="How long navigate waits for the page.",
    )
    parser.add_argument("--frame", type=int, help="Switch into the n-th iframe after navigating.")
    parser.add_argument("--click", metavar="SELECTOR", help="Locate SELECTOR and click the first match.")
    parser.add_argument("--type", dest="text", metavar="TEXT", help='Type TEXT ("<Enter>"-style key names allowed).')
    parser.add_argument("--eval", dest="script", metavar="JS", help="Evaluate JS and print the JSON result.")
    parser.add_argument("--pdf", metavar="PATH", help="Print the page to PATH.")
    parser.add_argument("--keep-open", action="store_true", help="Do not close the browser on exit.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log frames at DEBUG level.")
    return parser.parse_args(argv)


def _drive(session: WireSession, args: argparse.Namespace) -> None:
    session.new_session()
    session.list_targets()
    session.set_active_target(0)
    session.navigate(args.url, args.readiness)
    if args.frame is not None:
        session.set_active_frame(args.frame)
    if args.click:
        if session.locate_elements(args.click):
            session.click()
        else:
            logger.warning("no element matches %s; click skipped", args.click)
    if args.text:
        session.type_text(args.text)
    if args.script:
        print(json.dumps(session.evaluate(args.script), ensure_ascii=False, default=str))
    if args.pdf:
        session.print_page()
        PdfWriter(session).write(args.pdf)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    config = WireConfig.from_env()
    if args.keep_open:
        config.release_on_exit = False

    launcher: BrowserLauncher | None = None
    try:
        endpoint = args.endpoint
        if not endpoint:
            launcher = BrowserLauncher(LaunchConfig.from_env(args.browser))
            endpoint = launcher.launch()
        with WireSession.connect(endpoint, config) as session:
            _drive(session, args)
    except WireError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    finally:
        if launcher is not None and not args.keep_open:
            launcher.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
