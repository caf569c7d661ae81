#!/usr/bin/env python3
"""Unified entry point for the AxleNote service.

Starts the API server and the reminder worker as two processes, so the
hourly sweep never runs inside the request-serving process.
"""

import subprocess
import signal
import sys
import time
import logging
import os
from typing import List

from config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class ServiceSupervisor:
    """Starts the child processes and stops them together."""

    def __init__(self, workdir: str):
        self.workdir = workdir
        self.processes: List[subprocess.Popen] = []
        self.shutdown_requested = False

    def spawn(self, label: str, script: str):
        logger.info(f"Starting {label}...")
        process = subprocess.Popen(
            [sys.executable, script],
            cwd=self.workdir,
        )
        self.processes.append(process)
        return process

    def handle_signal(self, signum, frame):
        if self.shutdown_requested:
            logger.warning("Force shutdown requested")
            sys.exit(1)

        self.shutdown_requested = True
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        self.shutdown()

    def shutdown(self):
        """Stop all running services."""
        logger.info("Stopping all services...")
        for process in self.processes:
            if process.poll() is None:
                logger.info(f"Terminating process (PID: {process.pid})")
                process.terminate()

        # The worker finishes its current vehicle before exiting
        for process in self.processes:
            try:
                process.wait(timeout=30)
            except subprocess.TimeoutExpired:
                logger.warning(f"Force killing process (PID: {process.pid})")
                process.kill()
                process.wait()

        logger.info("All services stopped")
        sys.exit(0)

    def monitor(self):
        """Shut everything down if any child dies."""
        while not self.shutdown_requested:
            for process in self.processes:
                if process.poll() is not None:
                    logger.error(f"Process (PID: {process.pid}) has stopped unexpectedly!")
                    self.shutdown()
            time.sleep(5)


def main():
    """Main entry point - start all services."""
    supervisor = ServiceSupervisor(os.path.dirname(os.path.abspath(__file__)))

    signal.signal(signal.SIGTERM, supervisor.handle_signal)
    signal.signal(signal.SIGINT, supervisor.handle_signal)

    logger.info("=" * 60)
    logger.info("AxleNote - Unified Startup")
    logger.info("=" * 60)

    try:
        supervisor.spawn("API server", "api_server.py")
        time.sleep(2)
        if settings.WORKER_ENABLED:
            supervisor.spawn("reminder worker", "background_worker.py")
        else:
            logger.warning("Reminder worker disabled (WORKER_ENABLED=false)")

        logger.info("=" * 60)
        logger.info(f"  - API Server: http://{settings.API_HOST}:{settings.API_PORT}")
        logger.info(f"  - API Docs: http://{settings.API_HOST}:{settings.API_PORT}/docs")
        logger.info(f"  - Reminder sweep every {settings.REMINDER_CHECK_INTERVAL}s")
        logger.info("=" * 60)

        supervisor.monitor()

    except Exception as e:
        logger.error(f"Error starting services: {e}")
        supervisor.shutdown()


if __name__ == "__main__":
    main()
