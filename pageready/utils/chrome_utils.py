"""
pageready/utils/chrome_utils.py

Utilities for running Chrome with remote debugging enabled.
"""

import os
import platform
import shutil
import subprocess
import tempfile
import time
from urllib.parse import urlparse

import requests

from pageready.utils.logger import get_logger

logger = get_logger(name=__name__)

DEFAULT_PORT = 9222


def port_from_address(remote_debugging_address: str) -> int:
    """Return the port of a remote debugging address, DEFAULT_PORT when it has none."""
    return urlparse(remote_debugging_address).port or DEFAULT_PORT


def check_chrome_running(port: int = DEFAULT_PORT) -> bool:
    """Check if Chrome is already running in debug mode on the given port."""
    try:
        response = requests.get(f"http://127.0.0.1:{port}/json/version", timeout=1)
        return response.status_code == 200
    except requests.RequestException:
        return False


def find_chrome_path() -> str | None:
    """Find Chrome executable path based on OS."""
    system = platform.system()

    if system == "Darwin":
        chrome_path = "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
        if os.path.isfile(chrome_path):
            return chrome_path
    elif system == "Linux":
        for name in ["google-chrome", "chromium-browser", "chromium", "chrome"]:
            chrome_path = shutil.which(name)
            if chrome_path:
                return chrome_path
    elif system == "Windows":
        possible_paths = [
            os.path.expandvars(r"%ProgramFiles%\Google\Chrome\Application\chrome.exe"),
            os.path.expandvars(r"%ProgramFiles(x86)%\Google\Chrome\Application\chrome.exe"),
            os.path.expandvars(r"%LocalAppData%\Google\Chrome\Application\chrome.exe"),
        ]
        for path in possible_paths:
            if os.path.isfile(path):
                return path
        return shutil.which("chrome") or shutil.which("google-chrome")

    return None


def launch_chrome(port: int = DEFAULT_PORT, headless: bool = True) -> subprocess.Popen | None:
    """
    Launch Chrome in debug mode with a throwaway profile.

    Returns the Popen process if launched successfully, None otherwise.
    """
    chrome_path = find_chrome_path()
    if not chrome_path:
        logger.warning("Chrome not found automatically.")
        return None

    chrome_args = [
        chrome_path,
        "--remote-debugging-address=127.0.0.1",
        f"--remote-debugging-port={port}",
        f"--user-data-dir={tempfile.mkdtemp(prefix='pageready-chrome-')}",
        "--remote-allow-origins=*",
        "--no-first-run",
        "--no-default-browser-check",
    ]
    if headless:
        chrome_args.append("--headless=new")

    logger.info("Launching Chrome on port %d...", port)
    try:
        process = subprocess.Popen(
            chrome_args,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as e:
        logger.error("Error launching Chrome: %s", e)
        return None

    # wait for Chrome to be ready
    for _ in range(10):
        if check_chrome_running(port):
            logger.info("Chrome is ready on port %d", port)
            return process
        time.sleep(1)

    logger.warning("Chrome failed to start within timeout.")
    process.kill()
    return None
