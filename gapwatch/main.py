"""Main application entry point for gapwatch."""

import sys
import time
import argparse
import logging
from pathlib import Path

from pubsub import pub

from .config import GapwatchConfig
from .errors import GapwatchError
from .models.observer import EndSuggestion, Probe
from .services.session_service import ObservationSessionService
from .storage.file_manager import FileManager

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config_path: str, log_level: str = None):
        # Load configuration
        self.config = GapwatchConfig(config_path)
        # Set up logging (command line overrides config)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.should_exit = False
        self.service = None

    def init(self, mode: str = None, frequency: str = None):
        logger.info("Initializing services...")

        if mode:
            self.config.set('observer.mode', mode)
        if frequency:
            self.config.set('observer.frequency', frequency)

        self.service = ObservationSessionService(self.config)
        self.file_manager = FileManager(self.config.get_data_directory())

        pub.subscribe(self.on_probe, self.service.orchestrator.publisher.probe_topic)
        pub.subscribe(self.on_end_suggested, self.service.orchestrator.publisher.end_topic)

    def on_probe(self, event: Probe):
        seconds = event.timestamp_ms // 1000
        print(f"\n[{seconds // 60}:{seconds % 60:02d}] ({event.gap_score:.2f}) {event.text}")

    def on_end_suggested(self, event: EndSuggestion):
        print(f"\nThis looks like a good place to stop: {event.reason}")
        print("Press Ctrl+C to finish the session.")

    def run(self, problem: str, duration: int = None, use_eeg: bool = False):
        status = "completed"
        try:
            self.service.start_session(problem)
            if use_eeg or self.config.get('biosignal.enabled', False):
                if not self.service.connect_headband():
                    print("Headband pairing cancelled; continuing with audio only.")

            print(f"Observing: {problem}")
            deadline = time.monotonic() + duration if duration else None
            while not self.should_exit:
                if deadline is not None and time.monotonic() >= deadline:
                    break
                if self.service.orchestrator.end_confirmed.is_set():
                    break
                time.sleep(0.5)
        except KeyboardInterrupt:
            status = "stopped"
        finally:
            self.finish(status)

    def finish(self, status: str = "completed"):
        artifacts = self.service.stop_session(status)
        self.service.cleanup()
        if artifacts is None:
            return
        result = self.file_manager.export_session(artifacts)
        print(f"\nSession saved to {result['session_path']} "
              f"({len(artifacts.probes)} probes, {artifacts.duration_ms // 1000}s)")


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/gapwatch.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("gapwatch starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="gapwatch - watch yourself think out loud and get probed where your reasoning has gaps"
    )

    parser.add_argument(
        "--config",
        type=str,
        default="gapwatch.yaml",
        help="Path to configuration YAML file (default: gapwatch.yaml)"
    )

    parser.add_argument(
        "--problem",
        type=str,
        required=True,
        help="The problem you are working through"
    )

    parser.add_argument(
        "--duration",
        type=int,
        help="Stop automatically after this many seconds (default: run until Ctrl+C)"
    )

    parser.add_argument(
        "--eeg",
        action="store_true",
        help="Pair with a Muse headband and record band power alongside audio"
    )

    parser.add_argument(
        "--mode",
        choices=["off", "passive", "active"],
        help="Observer mode (overrides config)"
    )

    parser.add_argument(
        "--frequency",
        choices=["rare", "balanced", "frequent"],
        help="How often to analyze (overrides config)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (overrides config)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="gapwatch v0.1.0"
    )
    return parser


def main() -> None:
    """Main entry point for gapwatch."""
    args = build_parser().parse_args()

    try:
        server = Server(args.config, args.log_level)
        server.init(mode=args.mode, frequency=args.frequency)
        server.run(args.problem, duration=args.duration, use_eeg=args.eeg)
    except (GapwatchError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        logger.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
