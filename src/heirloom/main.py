"""
Living Heirloom Composition Root

Builds one instance of each core component and wires them together. The
presentation layer receives a HeirloomCore and talks only to its services.

Usage:
    from heirloom.main import setup_logging, create_core

    setup_logging()
    core = create_core(config)
"""

import sys
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from heirloom.models.app_config import AppConfig
from heirloom.services.capsule_vault import CapsuleVault
from heirloom.services.encrypted_store import EncryptedStore, KeyStore
from heirloom.services.fallback_policy import FallbackPolicy
from heirloom.services.generation_service import GenerationService
from heirloom.services.integrations.elevenlabs_client import ElevenLabsClient
from heirloom.services.integrations.inference_runtime import HttpInferenceRuntime, InferenceRuntime
from heirloom.services.model_lifecycle_manager import ModelLifecycleManager, ProgressNotifier
from heirloom.services.record_store import JsonRecordStore
from heirloom.services.voice_clone_orchestrator import VoiceCloneOrchestrator


def setup_logging(log_dir: Union[str, Path] = "logs", level: int = logging.INFO) -> None:
    """Configure application logging."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_dir / "heirloom.log"),
            logging.StreamHandler(sys.stdout)
        ]
    )


@dataclass
class HeirloomCore:
    """The wired set of core components."""
    config: AppConfig
    notifier: Optional[ProgressNotifier]
    model_manager: ModelLifecycleManager
    generation: GenerationService
    encrypted_store: EncryptedStore
    record_store: JsonRecordStore
    vault: CapsuleVault
    voice_client: ElevenLabsClient
    voice: VoiceCloneOrchestrator

    async def start(self, preload_model: bool = False) -> bool:
        """
        Start the lifecycle services.

        Without ``preload_model`` the language model loads on first generation.
        """
        started = await self.voice.start()
        if preload_model and self.config.features.enable_ai:
            started = await self.model_manager.start() and started
        return started

    async def stop(self) -> None:
        await self.model_manager.stop()
        await self.voice.stop()
        self.vault.close()
        self.record_store.close()


def create_core(
    config: Optional[AppConfig] = None,
    runtime: Optional[InferenceRuntime] = None,
    voice_client: Optional[ElevenLabsClient] = None,
    notifier: Optional[ProgressNotifier] = None
) -> HeirloomCore:
    """
    Construct and wire the core components.

    Args:
        config: Effective configuration (default: AppConfig())
        runtime: Inference runtime (default: local OpenAI-compatible server)
        voice_client: Voice cloning client (default: built from config)
        notifier: Optional Qt progress channel; requires a running QCoreApplication
            only for queued cross-thread delivery

    Returns:
        HeirloomCore: Components sharing one record store and one encrypted store
    """
    config = config or AppConfig()
    logger = logging.getLogger(__name__)

    validation = config.validate()
    if not validation.is_valid:
        logger.warning(f"Configuration has validation issues: {validation.summary}")

    data_directory = Path(config.storage.data_directory)
    key_file = Path(config.security.key_file)
    if not key_file.is_absolute():
        key_file = data_directory / key_file

    record_store = JsonRecordStore(config.storage, data_directory)
    encrypted_store = EncryptedStore(config.security, KeyStore(key_file, config.security.key_length))

    model_manager = ModelLifecycleManager(
        runtime or HttpInferenceRuntime(timeout=config.ai.timeout_seconds),
        config.ai,
        notifier
    )
    generation = GenerationService(model_manager, config.ai, config.features, FallbackPolicy("generation"))

    voice_client = voice_client or ElevenLabsClient(
        config.elevenlabs_api_key,
        base_url=config.voice.api_base_url,
        timeout=config.voice.request_timeout
    )
    voice = VoiceCloneOrchestrator(
        voice_client, record_store, encrypted_store, config.voice, config.features, FallbackPolicy("voice")
    )
    vault = CapsuleVault(record_store, encrypted_store, config.features)

    logger.info(
        f"Core created (ai={config.features.enable_ai}, voice={config.features.enable_voice}, "
        f"encryption={config.features.enable_encryption}, data={data_directory})"
    )
    return HeirloomCore(
        config=config,
        notifier=notifier,
        model_manager=model_manager,
        generation=generation,
        encrypted_store=encrypted_store,
        record_store=record_store,
        vault=vault,
        voice_client=voice_client,
        voice=voice
    )
