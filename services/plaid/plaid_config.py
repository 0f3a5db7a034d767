import logging

from plaid import ApiClient, Configuration, Environment
from plaid.api import plaid_api

from config.settings import Settings

logger = logging.getLogger(__name__)

_ENV_MAP = {
    "sandbox": Environment.Sandbox,
    "production": Environment.Production,
}
# Development was removed from recent plaid-python releases
if hasattr(Environment, "Development"):
    _ENV_MAP["development"] = Environment.Development


def resolve_plaid_host(env_name: str) -> str:
    name = (env_name or "sandbox").strip().lower()
    host = _ENV_MAP.get(name)
    if host is None:
        logger.warning("Unknown or unsupported PLAID_ENV=%r, falling back to sandbox", env_name)
        host = Environment.Sandbox
    return host


def build_plaid_api(settings: Settings) -> plaid_api.PlaidApi:
    host = resolve_plaid_host(settings.plaid_env)
    configuration = Configuration(
        host=host,
        api_key={
            "clientId": settings.plaid_client_id,
            "secret": settings.plaid_secret,
        },
    )
    logger.info("Plaid API client: environment=%s, client_id=<configured>", settings.plaid_env)
    return plaid_api.PlaidApi(ApiClient(configuration))
