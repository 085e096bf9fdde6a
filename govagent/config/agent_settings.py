import os
from pathlib import Path
from typing import Any, Dict

import yaml

from govagent.utils.logger import logger

VALID_CONVICTIONS = (
    "None",
    "Locked1x",
    "Locked2x",
    "Locked3x",
    "Locked4x",
    "Locked5x",
    "Locked6x",
)


class AgentConfig:
    """Configuration for the deliberation agent, loaded from agent_config.yaml."""

    _config = None
    _config_path = Path(os.environ.get("AGENT_CONFIG_PATH", Path(__file__).parent / "agent_config.yaml"))

    @classmethod
    def _load_config(cls) -> Dict[str, Any]:
        """Parse agent_config.yaml once and cache it on the class."""
        if cls._config is None:
            try:
                with open(cls._config_path, 'r') as f:
                    cls._config = yaml.safe_load(f)
                if cls._config is None:
                    raise ValueError(f"{cls._config_path} holds no settings")
            except FileNotFoundError:
                raise FileNotFoundError(f"Agent settings file {cls._config_path} does not exist")
            except yaml.YAMLError as e:
                raise ValueError(f"{cls._config_path} is not valid YAML: {e}")
        return cls._config

    @classmethod
    def reload(cls) -> None:
        """Drop the cached configuration so the next access re-reads the file."""
        cls._config = None

    # oracle model
    @classmethod
    def get_temperature(cls) -> float:
        config = cls._load_config()
        return config['llm'].get('temperature', 0.7)

    @classmethod
    def get_analysis_temperature(cls) -> float:
        config = cls._load_config()
        return config['llm'].get('analysis_temperature', 0.2)

    @classmethod
    def get_max_tokens(cls) -> int:
        config = cls._load_config()
        return config['llm'].get('max_tokens', 400)

    @classmethod
    def get_llm_config(cls, provider_name: str = "openai") -> Dict[str, Any]:
        """Get LLM configuration for a specific provider.

        Args:
            provider_name: Name of the provider ("openai", "xai")

        Returns:
            Dictionary with provider-specific configuration
        """
        config = cls._load_config()
        llm_config = config['llm']

        provider_config = {
            'temperature': cls.get_temperature(),
            'max_tokens': cls.get_max_tokens(),
        }
        if 'providers' in llm_config and provider_name in llm_config['providers']:
            provider_config.update(llm_config['providers'][provider_name] or {})
        return provider_config

    # Timeouts
    @classmethod
    def get_timeout(cls, name: str, default: float) -> float:
        """Get a timeout in seconds, e.g. get_timeout("oracle_seconds", 45)."""
        config = cls._load_config()
        return float((config.get('timeouts') or {}).get(name, default))

    # Voting policy
    @classmethod
    def get_conviction(cls) -> str:
        """Conviction applied to every vote. VOTE_CONVICTION overrides the file."""
        config = cls._load_config()
        conviction = os.environ.get("VOTE_CONVICTION") or (config.get('voting') or {}).get('conviction', 'Locked1x')
        conviction = str(conviction)
        if conviction not in VALID_CONVICTIONS:
            logger.error("AgentConfig: invalid conviction %r", conviction)
            raise ValueError(f"Invalid conviction '{conviction}'. Expected one of: {', '.join(VALID_CONVICTIONS)}")
        return conviction

    @classmethod
    def get_circuit_breaker_config(cls, name: str) -> Dict[str, Any]:
        config = cls._load_config()
        return dict((config.get('circuit_breakers') or {}).get(name) or {})
