"""
Heirloom Services Package

This package contains the orchestration services of the Living Heirloom core.
"""

# Import services without causing circular imports
__all__ = [
    'ConfigurationManager', 'ModelLifecycleManager', 'GenerationService', 'FallbackPolicy',
    'VoiceCloneOrchestrator', 'SampleRecorder', 'EncryptedStore', 'JsonRecordStore', 'CapsuleVault'
]

_LAZY = {
    'ConfigurationManager': 'configuration_service',
    'ModelLifecycleManager': 'model_lifecycle_manager',
    'GenerationService': 'generation_service',
    'FallbackPolicy': 'fallback_policy',
    'VoiceCloneOrchestrator': 'voice_clone_orchestrator',
    'SampleRecorder': 'voice_recorder',
    'EncryptedStore': 'encrypted_store',
    'JsonRecordStore': 'record_store',
    'CapsuleVault': 'capsule_vault',
}


def __getattr__(name):
    """Lazy import to avoid circular dependencies."""
    module_name = _LAZY.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    import importlib
    module = importlib.import_module(f".{module_name}", __name__)
    return getattr(module, name)
