"""
pod-janitor — deletes terminated Kubernetes pods after a retention period.

Bootstraps the in-cluster API client, then either runs a single sweep
(cron mode) or sweeps on a fixed interval until SIGINT/SIGTERM.

Usage:
    # Long-running, sweep every scheduler.interval_seconds
    python -m pod_janitor.main --config config/default.yaml

    # Single sweep, e.g. from a CronJob
    python -m pod_janitor.main --config config/default.yaml --once
"""

import argparse
import asyncio
import os
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

from pod_janitor.cleaner.janitor import PodJanitor
from pod_janitor.config import AppConfig, load_config
from pod_janitor.kube.client import KubeClient, KubeConfigError, load_incluster_config
from pod_janitor.monitor.metrics import Outcome, OutcomeRecorder
from pod_janitor.scheduler.scheduler import JanitorScheduler

__version__ = "0.1.0"


def apply_env_overrides(config: AppConfig) -> AppConfig:
    """Let the deployment override a few settings through the environment."""
    namespace = os.getenv("POD_NAMESPACE")
    if namespace:
        config.janitor.namespace = namespace
    pushgateway = os.getenv("PUSHGATEWAY_URL")
    if pushgateway:
        config.metrics.pushgateway_url = pushgateway
    return config


async def run(config: AppConfig, once: bool = False) -> int:
    """Build the janitor and run it. Returns the process exit code."""
    recorder = OutcomeRecorder()

    try:
        settings = load_incluster_config(
            api_url=config.kube.api_url,
            token_file=config.kube.token_file,
            ca_file=config.kube.ca_file,
            verify_ssl=config.kube.verify_ssl,
        )
    except KubeConfigError as e:
        logger.error("pod-janitor: failed to load Kubernetes config: {}", e)
        recorder.record_outcome(Outcome.CONFIG_ERROR)
        await asyncio.to_thread(recorder.push, config.metrics.pushgateway_url, config.metrics.job)
        return 1

    async with KubeClient(settings) as client:
        janitor = PodJanitor(
            client,
            recorder,
            namespace=config.janitor.namespace,
            delete_successful_after=config.janitor.delete_successful_after,
            delete_failed_after=config.janitor.delete_failed_after,
        )
        scheduler = JanitorScheduler(config, janitor, recorder)

        if once:
            await scheduler.run_once()
            return 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(
                    sig,
                    lambda: asyncio.create_task(scheduler.stop()),
                )
            except NotImplementedError:
                # Windows: SIGINT falls back to KeyboardInterrupt
                pass

        try:
            await scheduler.start()
        except KeyboardInterrupt:
            logger.info("pod-janitor: KeyboardInterrupt received")
        finally:
            await scheduler.stop()
            logger.info("pod-janitor: stopped cleanly")

    return 0


def setup_logging(config: AppConfig) -> None:
    """Configure loguru logging from config."""
    log_dir = Path(config.logging.file).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        level=config.logging.level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level:8}</level> | {message}",
    )
    logger.add(
        config.logging.file,
        level=config.logging.level,
        rotation=config.logging.rotation,
        retention=config.logging.retention,
        encoding="utf-8",
    )


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="pod-janitor — clean up terminated pods")
    parser.add_argument(
        "--config",
        default="config/default.yaml",
        help="Path to config YAML",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit",
    )
    args = parser.parse_args()

    load_dotenv()

    config = apply_env_overrides(load_config(args.config))
    setup_logging(config)

    logger.info("pod-janitor v{} starting", __version__)
    logger.info("Config: {}", args.config)
    logger.info(
        "Namespace: {} (succeeded after {}, failed after {})",
        config.janitor.namespace,
        config.janitor.delete_successful_after,
        config.janitor.delete_failed_after,
    )

    sys.exit(asyncio.run(run(config, once=args.once)))


if __name__ == "__main__":
    main()
