"""
pageready/scripts/wait_for_load.py

Navigate a Chrome tab to a URL, wait until the page is fully loaded and report its resources.
"""

import asyncio
import json
from argparse import ArgumentParser, Namespace

from rich import box
from rich.console import Console
from rich.table import Table

from pageready.cdp.async_cdp_session import AsyncCDPSession
from pageready.cdp.connection import get_browser_websocket_url
from pageready.cdp.monitors.async_page_load_monitor import ResourceSnapshots, navigate_and_wait
from pageready.config import Config
from pageready.utils.chrome_utils import check_chrome_running, launch_chrome, port_from_address
from pageready.utils.exceptions import BrowserConnectionError, PageReadyError
from pageready.utils.logger import get_logger

logger = get_logger(name=__name__)

console = Console()


def _status_label(snapshot) -> str:
    if snapshot.failed:
        return "[red]failed[/red]"
    if snapshot.timed_out:
        return "[yellow]timeout[/yellow]"
    if snapshot.loaded:
        return "[green]loaded[/green]"
    if snapshot.received:
        return "[cyan]received[/cyan]"
    return "pending"


def render_resources(resources: ResourceSnapshots) -> Table:
    """Build a rich table of the resource snapshots."""
    table = Table(box=box.SIMPLE, show_header=True, padding=(0, 1))
    table.add_column("Status")
    table.add_column("Code", justify="right")
    table.add_column("Method")
    table.add_column("Type")
    table.add_column("Time (ms)", justify="right")
    table.add_column("URL", overflow="fold")

    for snapshot in resources.values():
        table.add_row(
            _status_label(snapshot),
            str(snapshot.status_code) if snapshot.status_code is not None else "-",
            snapshot.method or "-",
            snapshot.resource_type or "-",
            f"{snapshot.time:.0f}" if snapshot.time is not None else "-",
            snapshot.url or "-",
        )
    return table


async def run(args: Namespace) -> ResourceSnapshots:
    ws_url = get_browser_websocket_url(args.remote_debugging_address)
    session = AsyncCDPSession(ws_url=ws_url)
    run_task = asyncio.create_task(session.run())
    try:
        if not await session.wait_until_ready():
            raise BrowserConnectionError("CDP session did not become ready")
        return await navigate_and_wait(
            session,
            args.url,
            dom_ready_timeout_ms=args.dom_ready_timeout_ms,
        )
    finally:
        await session.close()
        run_task.cancel()
        try:
            await run_task
        except asyncio.CancelledError:
            pass


def main() -> None:
    # parse arguments
    parser = ArgumentParser(description="Wait until a page is fully loaded and list its resources.")
    parser.add_argument("url", type=str, help="The URL to navigate to.")
    parser.add_argument(
        "--remote-debugging-address",
        type=str,
        default=Config.PAGEREADY_REMOTE_DEBUGGING_ADDRESS,
        help="Chrome remote debugging address.",
    )
    parser.add_argument("--launch-chrome", action="store_true", help="Launch a headless Chrome if none is running.")
    parser.add_argument("--output", type=str, default=None, help="Write the resource snapshots to this JSON file.")
    parser.add_argument(
        "--dom-ready-timeout-ms",
        type=int,
        default=Config.PAGEREADY_DOM_READY_TIMEOUT_MS,
        help="Deadline for the DOM content to become ready.",
    )
    args = parser.parse_args()

    chrome_process = None
    port = port_from_address(args.remote_debugging_address)
    if args.launch_chrome and not check_chrome_running(port):
        chrome_process = launch_chrome(port)
        if chrome_process is None:
            raise SystemExit("Could not launch Chrome")

    try:
        resources = asyncio.run(run(args))
    except (PageReadyError, TimeoutError) as e:
        logger.error("❌ %s", e)
        raise SystemExit(1)
    finally:
        if chrome_process is not None:
            chrome_process.terminate()

    console.print(render_resources(resources))
    console.print(f"{len(resources)} resources tracked for {args.url}")

    if args.output:
        with open(args.output, mode="w", encoding="utf-8") as f:
            json.dump(
                {identifier: snapshot.model_dump() for identifier, snapshot in resources.items()},
                f,
                ensure_ascii=False,
                indent=2,
            )
        logger.info("Resource snapshots saved to: %s", args.output)


if __name__ == "__main__":
    main()
