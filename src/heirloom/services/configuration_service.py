"""
Configuration Service

This module implements the ConfigurationManager service for loading, saving
and overriding the Living Heirloom configuration. Settings live in a JSON file;
feature flags and the remote API key may be overridden from the environment.
"""

import asyncio
import json
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from heirloom.models.app_config import AppConfig, merge_deep
from heirloom.models.error import ErrorSeverity, HeirloomError, StorageError
from heirloom.models.service_enums import ServiceStatus
from heirloom.services.core.base_service import BaseService


ENV_API_KEY = "ELEVENLABS_API_KEY"

# Environment variable -> (section, key, parser name)
ENV_OVERRIDES = {
    "HEIRLOOM_ENABLE_AI": ("features", "enable_ai", "bool"),
    "HEIRLOOM_ENABLE_VOICE": ("features", "enable_voice", "bool"),
    "HEIRLOOM_ENABLE_ENCRYPTION": ("features", "enable_encryption", "bool"),
    "HEIRLOOM_AI_MODEL_NAME": ("ai", "model_name", "str"),
    "HEIRLOOM_AI_TIMEOUT_MS": ("ai", "timeout_ms", "int"),
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_env_value(raw: str, kind: str) -> Any:
    value = raw.strip()
    if kind == "bool":
        if value.lower() in _TRUE:
            return True
        if value.lower() in _FALSE:
            return False
        raise ValueError(f"expected a boolean, got '{raw}'")
    if kind == "int":
        return int(value)
    return value


class ConfigurationManager(BaseService):
    """
    Service for managing application configuration with persistent storage.

    The file holds user preferences only. Environment overrides are applied on
    top of the loaded values and are never written back to the file.
    """

    def __init__(
        self,
        config_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        auto_save: bool = True,
        max_workers: int = 2
    ):
        """
        Initialize the ConfigurationManager.

        Args:
            config_file: Path to configuration file (default: config/settings.json)
            environ: Environment to read overrides from (default: os.environ)
            auto_save: Whether to write defaults when no usable file exists
            max_workers: Maximum thread pool workers for file operations
        """
        super().__init__("ConfigurationManager")

        self.config_file = Path(config_file) if config_file else Path("config/settings.json")
        self.environ = environ if environ is not None else os.environ
        self.auto_save = auto_save
        self.max_workers = max_workers

        self._file_data: Dict[str, Any] = {}
        self._config: Optional[AppConfig] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._save_lock = threading.Lock()

        self._load_count = 0
        self._save_count = 0
        self._last_load_time: Optional[float] = None
        self._last_save_time: Optional[float] = None

        self.logger.debug(f"ConfigurationManager initialized with file: {self.config_file}")

    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="ConfigManager")
        return self._executor

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._ensure_executor(), func, *args)

    async def start(self) -> bool:
        """
        Start the service and load the configuration.

        Returns:
            bool: True if service started successfully, False otherwise
        """
        try:
            await self._update_status(ServiceStatus.STARTING)
            await self.load_config()
            await self._update_status(ServiceStatus.RUNNING)
            return True
        except Exception as e:
            self.logger.exception(f"Failed to start ConfigurationManager service: {e}")
            await self._update_status(ServiceStatus.ERROR)
            return False

    async def stop(self) -> bool:
        await self._update_status(ServiceStatus.STOPPING)
        if self._executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        await self._update_status(ServiceStatus.STOPPED)
        return True

    async def health_check(self) -> tuple[bool, Optional[HeirloomError]]:
        if self._config is None:
            return False, HeirloomError(
                severity=ErrorSeverity.WARNING,
                code="NO_SETTINGS_LOADED",
                user_message="No settings are currently loaded",
                suggested_action="Load settings from file or create defaults"
            )
        if self.config_file.exists() and not self.config_file.is_file():
            return False, HeirloomError(
                severity=ErrorSeverity.ERROR,
                code="CONFIG_FILE_INVALID",
                user_message=f"Config file path is not a file: {self.config_file}",
                suggested_action="Remove the invalid config path"
            )
        return True, None

    # Loading

    def _load_sync(self, config_file: Path) -> Optional[Dict[str, Any]]:
        """Read the settings file. Returns None when it is missing or unreadable."""
        if not config_file.exists():
            return None
        try:
            data = json.loads(config_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            self.logger.error(f"Settings file corruption detected in {config_file}: {e}")
            corrupted = config_file.with_suffix(f".corrupted_{int(time.time())}")
            try:
                config_file.rename(corrupted)
                self.logger.info(f"Corrupted settings moved to {corrupted}")
            except OSError as rename_error:
                self.logger.warning(f"Could not move corrupted settings aside: {rename_error}")
            return None
        except OSError as e:
            self.logger.error(f"Error reading config file {config_file}: {e}")
            return None

        if not isinstance(data, dict):
            self.logger.error(f"Settings file {config_file} does not contain an object")
            return None
        return data

    def apply_env_overrides(self, config: AppConfig) -> AppConfig:
        """
        Apply environment overrides to a config built from the file.

        Invalid values are logged and ignored.
        """
        data = config.to_dict()
        for name, (section, key, kind) in ENV_OVERRIDES.items():
            raw = self.environ.get(name)
            if raw is None or raw == "":
                continue
            try:
                data[section][key] = _parse_env_value(raw, kind)
            except ValueError as e:
                self.logger.warning(f"Ignoring {name}: {e}")
                continue
            self.logger.info(f"Config override from environment: {section}.{key}")

        result = AppConfig.from_dict(data)
        api_key = self.environ.get(ENV_API_KEY)
        result.elevenlabs_api_key = api_key.strip() if api_key and api_key.strip() else None
        return result

    async def load_config(self) -> AppConfig:
        """
        Load configuration from file, falling back to defaults.

        Returns:
            AppConfig: Effective configuration including environment overrides
        """
        start_time = time.time()
        data = await self._run(self._load_sync, self.config_file)

        if data is None:
            self.logger.info(f"No usable config at {self.config_file}, using defaults")
            self._file_data = AppConfig().to_dict()
            if self.auto_save:
                try:
                    await self.save_config()
                except StorageError as e:
                    self.logger.warning(f"Could not write default settings: {e.technical_details}")
        else:
            self._file_data = data

        config = self.apply_env_overrides(AppConfig.from_dict(self._file_data))
        validation = config.validate()
        if not validation.is_valid:
            self.logger.warning(f"Loaded settings have validation issues: {validation.summary}")
            for issue in validation.issues:
                self.logger.warning(f"  Settings issue: {issue.field} - {issue.message}")

        self._config = config
        self._load_count += 1
        self._last_load_time = time.time()
        self.logger.info(f"Settings loaded in {self._last_load_time - start_time:.3f}s")
        return config

    # Saving

    def _save_sync(self, config_file: Path, data: Dict[str, Any]) -> None:
        with self._save_lock:
            config_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file = config_file.with_suffix(".tmp")
            temp_file.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            temp_file.replace(config_file)

    async def save_config(self) -> None:
        """
        Write the stored preferences atomically.

        Raises:
            StorageError: The settings file could not be written
        """
        try:
            await self._run(self._save_sync, self.config_file, self._file_data)
        except OSError as e:
            self.logger.error(f"Error writing settings file {self.config_file}: {e}")
            raise StorageError(
                severity=ErrorSeverity.ERROR,
                code="SETTINGS_SAVE_FAILED",
                user_message="Could not save your settings",
                technical_details=str(e),
                suggested_action="Check that the settings folder is writable"
            ) from e
        self._save_count += 1
        self._last_save_time = time.time()
        self.logger.debug(f"Settings written to {self.config_file}")

    async def update_preferences(self, updates: Dict[str, Any]) -> AppConfig:
        """
        Deep-merge preference updates, validate and persist them.

        Args:
            updates: Partial config, e.g. ``{"ai": {"temperature": 0.5}}``

        Returns:
            AppConfig: New effective configuration

        Raises:
            ValidationError: The merged configuration is out of range
            StorageError: The settings file could not be written
        """
        merged = merge_deep(self._file_data, updates)
        candidate = self.apply_env_overrides(AppConfig.from_dict(merged))
        candidate.validate().raise_if_invalid()

        self._file_data = AppConfig.from_dict(merged).to_dict()
        await self.save_config()
        self._config = candidate
        self.logger.info(f"Preferences updated: {sorted(updates)}")
        return candidate

    def get_config(self) -> AppConfig:
        """Current effective configuration; defaults plus environment until loaded."""
        if self._config is None:
            return self.apply_env_overrides(AppConfig())
        return self._config

    def get_service_metrics(self) -> Dict[str, Any]:
        metrics = self.get_status_info()
        metrics.update({
            "config_file": str(self.config_file),
            "load_count": self._load_count,
            "save_count": self._save_count,
            "last_load_time": self._last_load_time,
            "last_save_time": self._last_save_time,
            "settings_loaded": self._config is not None,
            "api_key_configured": bool(self._config and self._config.elevenlabs_api_key),
        })
        return metrics
