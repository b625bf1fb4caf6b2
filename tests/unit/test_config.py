"""Unit tests for GapwatchConfig."""

import os
import pytest
from pathlib import Path

from gapwatch.config import GapwatchConfig
from gapwatch.models.observer import Frequency, ObserverMode


@pytest.mark.unit
class TestGapwatchConfig:
    """Test cases for YAML loading and dot-path access."""

    def test_get_values(self, config_file):
        config = GapwatchConfig(config_file)

        assert config.get('audio.sample_rate') == 16000
        assert config.get('observer.mode') == "passive"
        assert config.get('observer.missing', 'fallback') == "fallback"
        assert config.get('audio.sample_rate.deeper') is None

    def test_relative_paths_resolved(self, config_file):
        config = GapwatchConfig(config_file)
        config_dir = Path(config_file).parent

        assert config.get('storage.data_directory') == str(config_dir / "data")
        assert config.get('logging.file_path') == str(config_dir / "data/logs/test.log")
        assert os.path.isabs(config.get_data_directory())

    def test_set_creates_sections(self, config_file):
        config = GapwatchConfig(config_file)

        config.set('observer.frequency', 'rare')
        config.set('biosignal.extra.flag', True)

        assert config.get('observer.frequency') == 'rare'
        assert config.get('biosignal.extra.flag') is True

    def test_observer_config(self, config_file):
        observer = GapwatchConfig(config_file).get_observer_config()

        assert observer.mode == ObserverMode.PASSIVE
        assert observer.frequency == Frequency.FREQUENT
        assert observer.muted_until is None

    def test_invalid_observer_mode(self, config_file):
        config = GapwatchConfig(config_file)
        config.set('observer.mode', 'shouty')

        with pytest.raises(ValueError):
            config.get_observer_config()

    def test_judgment_url(self, config_file):
        config = GapwatchConfig(config_file)
        assert config.get_judgment_url() == "http://localhost:3000/api"

        config.set('observer.judgment_url', None)
        with pytest.raises(ValueError):
            config.get_judgment_url()

    def test_missing_file(self, temp_data_dir):
        with pytest.raises(FileNotFoundError):
            GapwatchConfig(str(Path(temp_data_dir) / "nope.yaml"))

    def test_empty_file(self, temp_data_dir):
        path = Path(temp_data_dir) / "empty.yaml"
        path.write_text("", encoding='utf-8')

        with pytest.raises(ValueError):
            GapwatchConfig(str(path))

    def test_invalid_yaml(self, temp_data_dir):
        path = Path(temp_data_dir) / "bad.yaml"
        path.write_text("audio: [unclosed", encoding='utf-8')

        with pytest.raises(ValueError):
            GapwatchConfig(str(path))

    def test_sample_config_loads(self):
        sample = Path(__file__).resolve().parents[2] / "gapwatch.yaml"
        config = GapwatchConfig(str(sample))

        assert config.get_observer_config().mode == ObserverMode.ACTIVE
        assert config.get('audio.chunk_duration_ms') == 5000
        assert config.get('biosignal.enabled') is False
