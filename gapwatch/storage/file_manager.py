"""File management module for exporting observation sessions."""

import json
import logging
import random
import string
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional, List
from dataclasses import asdict

from ..models.session import SessionInfo, SessionArtifacts


logger = logging.getLogger(__name__)


class FileManager:
    """Manages the on-disk layout of exported sessions."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize file manager with data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.sessions_dir = self.data_dir / "sessions"
        self.logs_dir = self.data_dir / "logs"

        self._ensure_directories()

        logger.info(f"FileManager initialized with data_dir: {self.data_dir}")

    def _ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        for directory in [self.data_dir, self.sessions_dir, self.logs_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    def create_session_directory(self) -> str:
        """Create new session directory with timestamp and random suffix.

        Returns:
            Session ID (timestamp-based with random suffix)
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
        session_id = f"{timestamp}_{random_suffix}"
        session_path = self.sessions_dir / session_id
        session_path.mkdir(exist_ok=True)

        logger.info(f"Created session directory: {session_path}")
        return session_id

    def get_session_path(self, session_id: str) -> Path:
        return self.sessions_dir / session_id

    def _write_json(self, path: Path, data: Any) -> str:
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
        except (OSError, TypeError) as e:
            logger.error(f"Error writing {path}: {e}")
            raise
        logger.info(f"Saved: {path}")
        return str(path)

    def save_audio_file(self, audio_data: bytes, session_id: str, filename: str) -> str:
        """Save an encoded audio payload into the session directory.

        Returns:
            Full path to saved audio file
        """
        session_path = self.get_session_path(session_id)
        session_path.mkdir(parents=True, exist_ok=True)
        audio_file_path = session_path / filename

        try:
            with open(audio_file_path, 'wb') as f:
                f.write(audio_data)
        except OSError as e:
            logger.error(f"Error saving audio file: {e}")
            raise

        logger.info(f"Audio file saved: {audio_file_path} ({len(audio_data)} bytes)")
        return str(audio_file_path)

    def save_session_info(self, session_info: SessionInfo) -> str:
        """Save session information to session_info.json.

        Returns:
            Path to saved session info file
        """
        session_path = self.get_session_path(session_info.session_id)
        session_path.mkdir(parents=True, exist_ok=True)

        info_dict = asdict(session_info)
        info_dict['start_time'] = session_info.start_time.isoformat()
        return self._write_json(session_path / "session_info.json", info_dict)

    def load_session_info(self, session_id: str) -> Optional[SessionInfo]:
        """Load session information from JSON file.

        Returns:
            SessionInfo object or None if not found or unreadable
        """
        info_file = self.get_session_path(session_id) / "session_info.json"

        if not info_file.exists():
            logger.warning(f"Session info file not found: {info_file}")
            return None

        try:
            with open(info_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            data['start_time'] = datetime.fromisoformat(data['start_time'])
            return SessionInfo(**data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading session info: {e}")
            return None

    def list_sessions(self) -> List[str]:
        """List all exported session IDs, oldest first."""
        sessions = [
            path.name for path in self.sessions_dir.iterdir()
            if path.is_dir() and (path / "session_info.json").exists()
        ]
        sessions.sort()
        logger.debug(f"Found {len(sessions)} sessions")
        return sessions

    def export_session(self, artifacts: SessionArtifacts, session_id: Optional[str] = None) -> Dict[str, Any]:
        """Write every artifact of a finished session to disk.

        Args:
            artifacts: The bundle returned when the session stopped
            session_id: Existing session directory, a new one is created if omitted

        Returns:
            Dictionary with the session ID and the saved file paths
        """
        session_id = session_id or self.create_session_directory()
        session_path = self.get_session_path(session_id)
        saved_files = []

        audio_file = None
        if artifacts.audio is not None and artifacts.audio.chunks:
            audio_file = f"recording_{session_id}.{artifacts.audio_format}"
            saved_files.append(self.save_audio_file(artifacts.audio.payload, session_id, audio_file))

        probes = {
            "problem": artifacts.problem,
            "observer": {
                "mode": artifacts.observer_config.mode.value,
                "frequency": artifacts.observer_config.frequency.value,
            },
            "probes": [
                dict(asdict(probe), signals=list(probe.signals)) for probe in artifacts.probes
            ],
            "gap_scores": artifacts.gap_scores,
            "transcripts": artifacts.transcripts,
        }
        saved_files.append(self._write_json(session_path / f"probes_{session_id}.json", probes))

        if artifacts.has_eeg:
            eeg = {
                "device_name": artifacts.device_name,
                "channels": artifacts.eeg_samples,
                "band_powers": artifacts.band_powers.to_dict() if artifacts.band_powers else None,
                "band_power_average": (artifacts.band_power_average.to_dict()
                                       if artifacts.band_power_average else None),
            }
            saved_files.append(self._write_json(session_path / f"eeg_{session_id}.json", eeg))

        session_info = SessionInfo(
            session_id=session_id,
            problem=artifacts.problem,
            start_time=artifacts.started_at,
            duration_ms=artifacts.duration_ms,
            audio_file=audio_file,
            audio_format=artifacts.audio_format,
            probe_count=len(artifacts.probes),
            end_status=artifacts.end_status,
            has_eeg=artifacts.has_eeg,
            device_name=artifacts.device_name,
        )
        saved_files.append(self.save_session_info(session_info))

        logger.info(f"Exported session {session_id}: {len(saved_files)} files")
        return {
            "session_id": session_id,
            "session_path": str(session_path),
            "saved_files": saved_files,
        }
