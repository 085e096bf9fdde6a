"""
Governance agent HTTP/WebSocket service.

Run with ``uvicorn govagent.main:create_app --factory``.
"""
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from govagent.agent.deliberation import DeliberationEngine
from govagent.agent.ingestion import ProposalIngestor
from govagent.agent.oracle import DecisionOracle
from govagent.agent.vote_executor import VoteExecutor
from govagent.chat.hub import ChatHub
from govagent.config import common_settings
from govagent.config.agent_settings import AgentConfig
from govagent.config.database_config import DatabaseConfig, is_database_configured
from govagent.exceptions import ConfigurationError, GovAgentError
from govagent.llm.factory import create_chat_model, create_oracle_model, identify_model_name
from govagent.routers.deps import ServiceContainer
from govagent.routers.fastapi_router import router as api_router
from govagent.services.chain_gateway import ChainGateway, keypair_from_seed
from govagent.services.postgres_storage import PostgresStorage
from govagent.services.proposal_source import PolkassemblyClient
from govagent.services.storage import InMemoryStorage
from govagent.utils.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from govagent.utils.logger import logger
from govagent.utils.startup_validation import validate_startup

DEFAULT_CHAIN_RPC_URL = "wss://kusama-rpc.polkadot.io"


def build_services() -> ServiceContainer:
    """Wire every component from environment and ``agent_config.yaml``."""
    if is_database_configured():
        storage = PostgresStorage(DatabaseConfig())
        logger.info("✅ Using PostgreSQL storage")
    else:
        storage = InMemoryStorage()
        logger.info("⚠️  Using in-memory storage (no database configured)")

    oracle_timeout = AgentConfig.get_timeout("oracle_seconds", 45.0)
    oracle_llm = create_oracle_model(timeout=oracle_timeout)
    analysis_llm = None
    if oracle_llm is not None:
        analysis_llm = create_chat_model(temperature=AgentConfig.get_analysis_temperature(), timeout=oracle_timeout)
    oracle = DecisionOracle(oracle_llm, timeout=oracle_timeout, analysis_llm=analysis_llm)
    if oracle_llm is not None:
        logger.info(f"✅ Decision oracle model: {identify_model_name(oracle_llm)}")

    keypair = None
    if common_settings.SIGNING_SEED:
        keypair = keypair_from_seed(common_settings.SIGNING_SEED, common_settings.CHAIN_SS58_FORMAT)
    breaker_settings = AgentConfig.get_circuit_breaker_config("chain")
    breaker = CircuitBreaker(CircuitBreakerConfig(name="chain", **breaker_settings))
    chain = ChainGateway(
        url=common_settings.CHAIN_RPC_URL or DEFAULT_CHAIN_RPC_URL,
        keypair=keypair,
        ss58_format=common_settings.CHAIN_SS58_FORMAT,
        connect_timeout=AgentConfig.get_timeout("chain_connect_seconds", 20.0),
        read_timeout=AgentConfig.get_timeout("chain_read_seconds", 15.0),
        submit_timeout=AgentConfig.get_timeout("chain_submit_seconds", 120.0),
        breaker=breaker,
    )

    hub = ChatHub(storage, send_timeout=AgentConfig.get_timeout("send_seconds", 5.0))
    executor = VoteExecutor(storage, chain, conviction=AgentConfig.get_conviction(),
                            enabled=common_settings.VOTING_ENABLED)
    engine = DeliberationEngine(storage, hub, oracle, executor)
    source = PolkassemblyClient(network=common_settings.POLKASSEMBLY_NETWORK,
                                base_url=common_settings.POLKASSEMBLY_BASE_URL)
    ingestor = ProposalIngestor(storage, oracle, source)

    return ServiceContainer(storage=storage, hub=hub, oracle=oracle, chain=chain,
                            executor=executor, engine=engine, ingestor=ingestor)


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the application. Pass ``services`` to inject pre-built components."""
    if services is None:
        logger.info("Governance agent starting up...")
        if not validate_startup():
            raise ConfigurationError("Startup validation failed. Please check configuration.")
        services = build_services()

    app = FastAPI(title="Governance Agent", version="0.1.0")
    app.state.services = services

    if common_settings.ALLOWED_ORIGINS:
        allowed_origins = [origin.strip() for origin in common_settings.ALLOWED_ORIGINS.split(",") if origin.strip()]
        logger.info(f"Allowed origins: {allowed_origins}")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    @app.exception_handler(GovAgentError)
    async def govagent_error_handler(request: Request, exc: GovAgentError) -> JSONResponse:
        status = exc.code if 400 <= exc.code < 600 else 500
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        headers = {"Retry-After": str(int(exc.retry_after))} if exc.retry_after is not None else None
        return JSONResponse(status_code=status, content=exc.to_dict(), headers=headers)

    @app.get("/healthz")
    async def healthz(deep: bool = False) -> dict:
        """Health check with storage and chain status. ``deep=true`` also queries the chain node."""
        health_status = {"status": "ok"}

        if await services.storage.ping():
            health_status["database"] = "connected"
        else:
            health_status["database"] = "unavailable"
            health_status["status"] = "degraded"
        if isinstance(services.storage, PostgresStorage):
            health_status["pool_stats"] = services.storage.pool_stats

        if deep:
            health_status["chain"] = await services.chain.health()
            if not health_status["chain"]["connected"]:
                health_status["status"] = "degraded"
        else:
            health_status["chain"] = {"breaker": services.chain.breaker.get_status()}
        if health_status["chain"]["breaker"]["state"] != "closed":
            health_status["status"] = "degraded"

        health_status["oracle"] = "enabled" if services.oracle.enabled else "disabled"
        health_status["pending_turns"] = services.engine.pending_turns
        health_status["connections"] = services.hub.connection_count
        return health_status

    @app.on_event("startup")
    async def startup_event():
        """Prepare storage before serving."""
        if isinstance(services.storage, PostgresStorage):
            await services.storage.ensure_schema()
            logger.info("✅ Database schema ready")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Let running deliberation turns finish, then release connections."""
        logger.info("Shutting down governance agent...")
        await services.engine.drain()
        await services.chain.close()
        await services.storage.close()

    app.include_router(api_router)
    return app
