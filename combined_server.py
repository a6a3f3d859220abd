"""
Combined server that runs the Flask API and the Pin Wheel scheduler
Runs the scheduler in a background subprocess, Flask (Gunicorn) in the main process
"""
import os
import sys
import subprocess
import threading
import time

from dotenv import load_dotenv

load_dotenv()

from utils.logging_config import setup_logging  # noqa: E402

logger = setup_logging()


def run_database_setup():
    """Create tables before starting services"""
    logger.info("📋 Running database setup...")
    from pinwheel.database import create_portal_engine, setup_portal_database

    engine = create_portal_engine()
    setup_portal_database(engine)
    engine.dispose()


def run_scheduler():
    """Run the Pin Wheel scheduler in a background subprocess"""
    logger.info("🕗 Starting Pin Wheel scheduler subprocess...")
    try:
        # A subprocess survives the exec into Gunicorn below
        process = subprocess.Popen(
            [sys.executable, "-u", "-m", "pinwheel.scheduler"],
            stdout=sys.stdout,
            stderr=sys.stderr
        )
        logger.info(f"✅ Scheduler subprocess started (PID: {process.pid})")
        process.wait()
        logger.error(f"❌ Scheduler exited with code {process.returncode}")
    except OSError as e:
        logger.error(f"❌ Scheduler error: {e}", exc_info=True)


if __name__ == '__main__':
    logger.info("🚀 Starting combined API + scheduler server...")
    logger.info(f"Python: {sys.version}")

    run_database_setup()

    scheduler_thread = threading.Thread(target=run_scheduler, daemon=True)
    scheduler_thread.start()

    # Give the scheduler a moment to start
    time.sleep(1)

    port = int(os.getenv('PORT', 8000))
    logger.info(f"📡 Starting API server with Gunicorn on port {port}...")

    try:
        os.execvp('gunicorn', [
            'gunicorn',
            '--bind', f'0.0.0.0:{port}',
            '--workers', '2',
            '--timeout', '120',
            '--access-logfile', '-',
            '--error-logfile', '-',
            'core.api_server:create_app()'
        ])
    except OSError as e:
        logger.error(f"❌ Failed to start Gunicorn: {e}", exc_info=True)
        sys.exit(1)
