#!/usr/bin/env python3
"""
News relay: polls news, legislative and space feeds and forwards at most
one fresh item per cycle to Discord.
"""

import errno
import fcntl
import logging
import os
import signal
import sys
import threading
import time

import schedule

from newsrelay.bot import NewsBot
from newsrelay.config import Config

logger = logging.getLogger(__name__)

# Path for process lock file
LOCK_FILE = 'state/bot.lock'
LOG_FILE = 'bot.log'


def configure_logging(level: str = "INFO"):
    """Log to bot.log and stdout"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE),
            logging.StreamHandler(sys.stdout)
        ]
    )


class ProcessLock:
    """Process lock to prevent multiple instances from running simultaneously"""

    def __init__(self, lock_file):
        self.lock_file = lock_file
        self.lock_file_handle = None

    def acquire(self):
        """Acquire a lock, return True if successful, False otherwise"""
        try:
            os.makedirs(os.path.dirname(self.lock_file) or '.', exist_ok=True)
            self.lock_file_handle = open(self.lock_file, 'a+')
            fcntl.flock(self.lock_file_handle, fcntl.LOCK_EX | fcntl.LOCK_NB)

            self.lock_file_handle.seek(0)
            self.lock_file_handle.truncate()
            self.lock_file_handle.write(str(os.getpid()))
            self.lock_file_handle.flush()

            logger.info(f"Process lock acquired (PID: {os.getpid()})")
            return True
        except OSError as e:
            if e.errno in (errno.EAGAIN, errno.EACCES):
                try:
                    with open(self.lock_file, 'r') as f:
                        pid = f.read().strip()
                    logger.warning(f"Another process is already running (PID: {pid or 'unknown'})")
                except OSError:
                    logger.warning("Another process is already running (unknown PID)")
            else:
                logger.error(f"Failed to acquire process lock: {e}")

            if self.lock_file_handle:
                self.lock_file_handle.close()
                self.lock_file_handle = None

            return False

    def release(self):
        """Release the lock"""
        if self.lock_file_handle:
            try:
                fcntl.flock(self.lock_file_handle, fcntl.LOCK_UN)
                self.lock_file_handle.close()
                self.lock_file_handle = None
                logger.info("Process lock released")
            except OSError as e:
                logger.error(f"Failed to release process lock: {e}")


class CycleRunner:
    """Drives cycles with ``schedule``; each run re-registers itself at the scheduler's current interval."""

    def __init__(self, bot: NewsBot, scheduler: schedule.Scheduler = None):
        self.bot = bot
        self.scheduler = scheduler or schedule.Scheduler()
        self.shutdown_requested = False

    def request_shutdown(self):
        self.shutdown_requested = True

    def _setup_signal_handlers(self):
        """Setup graceful shutdown handlers"""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating graceful shutdown...")
            self.request_shutdown()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def schedule_next(self):
        minutes = self.bot.current_interval_minutes
        self.scheduler.every(max(1, int(round(minutes * 60)))).seconds.do(self.tick)
        logger.info(f"⏰ Next check in {minutes:.2f} minutes")

    def tick(self):
        if not self.shutdown_requested:
            self.bot.run_cycle()
            self.schedule_next()
        return schedule.CancelJob

    def run(self, poll_seconds: float = 1.0):
        self._setup_signal_handlers()
        logger.info("🚀 Running initial cycle...")
        self.tick()
        while not self.shutdown_requested:
            self.scheduler.run_pending()
            time.sleep(poll_seconds)
        self.scheduler.clear()


def start_control_panel(bot: NewsBot, config: Config):
    """Serve the Flask control panel from a daemon thread"""
    from web_app import create_app

    app = create_app(bot)
    thread = threading.Thread(
        target=app.run,
        kwargs={'host': config.gui_host, 'port': config.gui_port, 'debug': False, 'use_reloader': False, 'threaded': True},
        name='control-panel',
        daemon=True,
    )
    thread.start()
    logger.info(f"🌐 Control panel: http://{config.gui_host}:{config.gui_port}")
    return thread


def main():
    """Load config, take the process lock and run cycles until signalled"""
    configure_logging(os.getenv('LOG_LEVEL', 'INFO'))
    try:
        logger.info("📰 Starting news relay...")

        # Check if another instance is already running
        process_lock = ProcessLock(LOCK_FILE)
        if not process_lock.acquire():
            logger.error("Another instance of the bot is already running. Exiting.")
            sys.exit(1)

        try:
            try:
                config = Config.from_env()
            except ValueError as e:
                logger.error(f"Configuration error:\n{e}")
                sys.exit(1)
            logging.getLogger().setLevel(getattr(logging, config.log_level, logging.INFO))

            bot = NewsBot(config)
            bot.initialize()

            if not config.disable_gui:
                start_control_panel(bot, config)

            runner = CycleRunner(bot)
            logger.info(f"📅 Base interval: {config.interval_minutes} min, max {config.max_interval_minutes} min")
            logger.info("⏹️  Stop: Press Ctrl+C for graceful shutdown")
            try:
                runner.run()
            finally:
                bot.shutdown()
            logger.info("👋 Graceful shutdown completed")
        finally:
            # Always release the process lock
            process_lock.release()

    except KeyboardInterrupt:
        logger.info("👋 Shutdown requested by user")
    except Exception as e:
        logger.error(f"💥 Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
