"""Main application entry point for the engine stats collector."""

import argparse
import logging
import os
import signal
import sys
from typing import List

from .collectors.engine_collector import EngineCollector
from .collectors.entity_filter import EntityFilter
from .config.loader import ConfigLoader
from .config.models import CollectorSystemConfig
from .scheduler import CollectionScheduler
from .services.report_writer import ReportWriter
from .utils.errors import BeStatsError, ConfigurationError, ShutdownError
from .utils.logger import setup_logger


class MetricsApp:
    """
    Main collector application.

    Builds one collector per configured engine and hands them to the
    interval scheduler, with graceful shutdown on SIGINT/SIGTERM.
    """

    def __init__(self, config_path: str = "config/config.yaml", log_level: str = "INFO"):
        """
        Initialize collector application.

        Args:
            config_path: Path to configuration file
            log_level: Logging level name

        Raises:
            ConfigurationError: If the configuration cannot be loaded
        """
        self.config_path = config_path
        self.logger = setup_logger("bestats", log_level)

        self.logger.info("=" * 60)
        self.logger.info("Engine Stats Collector")
        self.logger.info("=" * 60)

        self.config = self._load_config()
        self.collectors = self._build_collectors(self.config)
        self.scheduler = CollectionScheduler(
            self.collectors,
            interval_seconds=self.config.monitoring.interval_seconds,
            grace_seconds=self.config.monitoring.shutdown_grace_seconds,
            logger=self.logger
        )
        self.logger.info("Application initialized successfully")

    def _load_config(self) -> CollectorSystemConfig:
        self.logger.info(f"Loading configuration from {self.config_path}")
        config = ConfigLoader.load_from_file(self.config_path)

        monitoring = config.monitoring
        self.logger.info(f"Write stats every {monitoring.interval_seconds} seconds")
        self.logger.info(f"Statistics report is in folder {monitoring.report_folder}")
        self.logger.info(f"Report types: {', '.join(config.reports)}")
        for name, patterns in config.include.items():
            self.logger.info(f"Report {name} includes entity patterns {patterns}")
        if monitoring.ignore_internal_entities:
            self.logger.info("Ignore stats of internal entities")
        return config

    def _build_collectors(self, config: CollectorSystemConfig) -> List[EngineCollector]:
        monitoring = config.monitoring
        entity_filter = EntityFilter(
            config.inclusion_rules(),
            ignore_internal=monitoring.ignore_internal_entities
        )
        categories = config.categories()

        collectors = []
        for endpoint in config.engines:
            self.logger.info(f"Monitoring engine {endpoint.label}", extra={"engine": endpoint.label})
            writer = ReportWriter(
                endpoint,
                report_folder=monitoring.report_folder,
                include_year=monitoring.include_year_in_filename,
                logger=self.logger.getChild("ReportWriter")
            )
            collectors.append(EngineCollector(
                endpoint,
                categories,
                entity_filter,
                writer,
                self.logger,
                timeout=monitoring.request_timeout_seconds
            ))
        return collectors

    def _signal_handler(self, signum, frame):
        """
        Handle shutdown signals.

        Args:
            signum: Signal number
            frame: Current stack frame
        """
        signal_name = signal.Signals(signum).name
        self.logger.info(f"Received {signal_name}, initiating graceful shutdown...")
        self.scheduler.stop()

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

    def run(self) -> None:
        """
        Collect on the configured interval until interrupted.

        Raises:
            ShutdownError: If workers do not finish while draining
        """
        self.install_signal_handlers()
        self.logger.info("Start monitoring ...")
        self.scheduler.run_forever()

    def run_once(self) -> bool:
        """
        Run one collection cycle on every engine and shut down.

        Returns:
            bool: True if every engine connected and no category failed
        """
        results = self.scheduler.run_once()
        ok = len(results) == len(self.collectors)
        for result in results:
            self.logger.info(
                f"{result.engine}: connected={result.connected}, rows={result.rows_written}",
                extra={"engine": result.engine}
            )
            if not result.connected or result.failed_categories:
                ok = False
        return ok

    def check(self) -> bool:
        """
        Probe every engine's management interface.

        Returns:
            bool: True if every engine answered
        """
        ok = True
        for collector in self.collectors:
            try:
                info = collector.probe()
                self.logger.info(
                    f"{info['engine']}: {info['mbean_count']} MBeans in domains "
                    f"{', '.join(info['domains'])}",
                    extra={"engine": collector.label}
                )
            except BeStatsError as e:
                self.logger.error(f"{collector.label}: {e}", extra={"engine": collector.label})
                ok = False
            finally:
                collector.close()
        return ok


def main():
    """
    CLI entry point.

    Parses command-line arguments and starts the collector.
    """
    parser = argparse.ArgumentParser(
        description='Collect engine cache, entity and transaction stats into daily CSV files',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Collect on the configured interval (default)
  bestats --config config/config.yaml

  # Collect once and exit
  bestats --run-once

  # Check connectivity and list management domains
  bestats --check
        """
    )

    parser.add_argument(
        '--config',
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        '--run-once',
        action='store_true',
        help='Run one collection cycle and exit (no scheduler)'
    )
    mode.add_argument(
        '--check',
        action='store_true',
        help='Probe every engine and exit'
    )

    parser.add_argument(
        '--log-level',
        default=os.getenv('LOG_LEVEL', 'INFO'),
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO or LOG_LEVEL env var)'
    )

    args = parser.parse_args()

    try:
        app = MetricsApp(config_path=args.config, log_level=args.log_level)
    except ConfigurationError as e:
        setup_logger("bestats", args.log_level).error(f"Configuration error: {e}")
        sys.exit(1)
    except Exception as e:
        logging.error(f"Application startup failed: {e}", exc_info=True)
        sys.exit(1)

    try:
        if args.check:
            sys.exit(0 if app.check() else 1)
        elif args.run_once:
            sys.exit(0 if app.run_once() else 1)
        else:
            app.run()
    except ShutdownError as e:
        app.logger.critical(f"Unclean shutdown: {e}")
        sys.exit(1)

    sys.exit(0)


if __name__ == '__main__':
    main()
