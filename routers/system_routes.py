import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from config.settings import Settings
from services.session_auth import get_settings

logger = logging.getLogger(__name__)
router = APIRouter(tags=["system"])

SERVICE_VERSION = "2.0.0"
APP_OAUTH_RETURN_URL = "tradelog://oauth/complete"

_REDIRECT_HTML = """<!DOCTYPE html>
<html>
<head>
  <title>TradeLog - Redirecting...</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>
    body { font-family: -apple-system, BlinkMacSystemFont, system-ui; text-align: center; padding: 40px; background: #f5f5f7; }
    .container { max-width: 400px; margin: 0 auto; background: white; padding: 30px; border-radius: 12px; }
    p { color: #6e6e73; line-height: 1.5; }
  </style>
</head>
<body>
  <div class="container">
    <h2>Connection Complete</h2>
    <p>Redirecting you back to TradeLog...</p>
    <script>
      setTimeout(function () {
        window.location = '__RETURN_URL__?' + new URLSearchParams(location.search).toString();
      }, 1500);
    </script>
  </div>
</body>
</html>
"""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/")
def root(settings: Settings = Depends(get_settings)):
    return {
        "message": "TradeLog Secure Backend is running!",
        "status": "healthy",
        "timestamp": _now_iso(),
        "environment": settings.app_env,
        "version": SERVICE_VERSION,
    }


@router.get("/health")
def health(request: Request):
    settings: Settings = request.app.state.settings
    return {
        "status": "OK",
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "timestamp": _now_iso(),
        "plaid_configured": bool(settings.plaid_client_id and settings.plaid_secret),
        "jwt_configured": bool(settings.jwt_secret),
    }


@router.get("/plaid/redirect", response_class=HTMLResponse)
def plaid_oauth_redirect():
    # query string is forwarded client-side; it may carry oauth_state_id
    logger.info("plaid_oauth_redirect_received")
    return HTMLResponse(_REDIRECT_HTML.replace("__RETURN_URL__", APP_OAUTH_RETURN_URL))


@router.get("/.well-known/apple-app-site-association")
def apple_app_site_association(settings: Settings = Depends(get_settings)):
    return {
        "applinks": {
            "details": [
                {
                    "appIDs": list(settings.apple_app_ids),
                    "components": [
                        {"/": "/plaid/*", "comment": "Matches any URL path starting with /plaid/"}
                    ],
                }
            ]
        }
    }
