"""
Configuration checks run before the agent accepts traffic.

Missing signing credentials or chain endpoint are fatal when voting is
enabled; a missing oracle credential only degrades the agent.
"""

import sys
from typing import List

from govagent.config import common_settings
from govagent.utils.logger import logger


class StartupValidator:
    """Collects fatal errors and warnings about the deployment environment."""

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_all(self) -> bool:
        """
        Run every check and log the outcome.

        Returns:
            False when anything fatal was found.
        """
        logger.info("StartupValidator: checking configuration")

        # fatal
        self._validate_chain_config()
        self._validate_voting_policy()
        self._validate_database_config()

        # degraded but serviceable
        self._validate_oracle_config()
        self._validate_optional_config()

        self._report_results()
        return len(self.errors) == 0

    def _validate_chain_config(self) -> None:
        if not common_settings.VOTING_ENABLED:
            self.warnings.append("VOTING_ENABLED is false: the agent will deliberate but never vote")
            return

        missing = [name for name in ("SIGNING_SEED", "CHAIN_RPC_URL") if not getattr(common_settings, name)]
        if missing:
            self.errors.append(f"Missing required environment variables for voting: {', '.join(missing)}")
            return

        from govagent.exceptions import ConfigurationError
        from govagent.services.chain_gateway import keypair_from_seed
        try:
            keypair = keypair_from_seed(common_settings.SIGNING_SEED, common_settings.CHAIN_SS58_FORMAT)
            logger.info("StartupValidator: voting account %s", keypair.ss58_address)
        except ConfigurationError as e:
            self.errors.append(e.message)

    def _validate_voting_policy(self) -> None:
        from govagent.config.agent_settings import AgentConfig
        try:
            AgentConfig.get_conviction()
        except (ValueError, FileNotFoundError) as e:
            self.errors.append(f"Voting policy invalid: {e}")

    def _validate_database_config(self) -> None:
        from govagent.config.database_config import is_database_configured, validate_database_environment
        if not is_database_configured():
            self.warnings.append("No database configured: using the in-memory store (data is lost on restart)")
            return
        if not validate_database_environment():
            self.errors.append("DATABASE_* settings are incomplete or invalid")

    def _validate_oracle_config(self) -> None:
        provider = (common_settings.DEFAULT_PROVIDER or "").lower()
        key = common_settings.X_AI_API_KEY if provider in ("xai", "x-ai", "grok") else common_settings.OPENAI_API_KEY
        if not key:
            self.warnings.append(
                f"No API key for LLM provider '{provider}': proposals get the default score and chat gets canned replies"
            )

    def _validate_optional_config(self) -> None:
        if not common_settings.ALLOWED_ORIGINS:
            self.warnings.append("ALLOWED_ORIGINS not set: browser clients on other origins will be refused")

    def _report_results(self) -> None:
        if self.errors:
            logger.error("StartupValidator: %d fatal problem(s):", len(self.errors))
            for error in self.errors:
                logger.error("  - %s", error)

        if self.warnings:
            logger.warning("StartupValidator: %d warning(s):", len(self.warnings))
            for warning in self.warnings:
                logger.warning("  - %s", warning)

        if not self.errors and not self.warnings:
            logger.info("StartupValidator: configuration OK")
        elif not self.errors:
            logger.info("StartupValidator: configuration usable with %d warning(s)", len(self.warnings))


def validate_startup() -> bool:
    """True when the environment is fit to serve."""
    return StartupValidator().validate_all()


def validate_or_exit() -> None:
    """Exit with status 1 on fatal configuration problems."""
    if not validate_startup():
        logger.error("StartupValidator: refusing to start")
        sys.exit(1)
    logger.info("StartupValidator: ready")


if __name__ == "__main__":
    validate_or_exit()
