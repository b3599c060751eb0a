"""Protocol constants for the Code Assist backend and the Google OAuth flow."""

from typing import Final

# Code Assist API endpoint (matching the Gemini CLI's endpoint)
CODE_ASSIST_ENDPOINT: Final = "https://cloudcode-pa.googleapis.com"
CODE_ASSIST_API_VERSION: Final = "v1internal"

# Headers the Code Assist API expects from the official node client.
CODE_ASSIST_HEADERS: Final[dict[str, str]] = {
    "User-Agent": "google-api-nodejs-client/9.15.1",
    "X-Goog-Api-Client": "gl-node/22.17.0",
    "Client-Metadata": "ideType=IDE_UNSPECIFIED,platform=PLATFORM_UNSPECIFIED,pluginType=GEMINI",
}

CLIENT_METADATA: Final[dict[str, str]] = {
    "ideType": "IDE_UNSPECIFIED",
    "platform": "PLATFORM_UNSPECIFIED",
    "pluginType": "GEMINI",
}

# Sentinel project id used until loadCodeAssist yields a managed project.
DEFAULT_PROJECT_ID: Final = "default"

# Attached to every functionCall part we forward; the backend rejects
# replayed function calls that carry no thought signature.
SKIP_THOUGHT_SIGNATURE: Final = "skip_thought_signature_validator"

# Google OAuth (installed-app client shared with the Gemini CLI)
GOOGLE_AUTH_URL: Final = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL: Final = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL: Final = "https://www.googleapis.com/oauth2/v2/userinfo"
GEMINI_REDIRECT_HOST: Final = "127.0.0.1"
GEMINI_REDIRECT_PORT: Final = 8085
GEMINI_REDIRECT_URI: Final = f"http://localhost:{GEMINI_REDIRECT_PORT}/oauth2callback"
GEMINI_SCOPES: Final[tuple[str, ...]] = (
    "https://www.googleapis.com/auth/cloud-platform",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
)
DEFAULT_CLIENT_ID: Final = (
    "681255809395-oo8ft2oprdrnp9e3aqf6av3hmdib135j" + ".apps.googleusercontent.com"
)
DEFAULT_CLIENT_SECRET: Final = "GOCSPX" + "-4uHgMPm-1o7Sk-geV6Cu5clXFsxl"

# Seconds before expiry at which an access token is treated as expired.
TOKEN_EXPIRY_BUFFER_SECONDS: Final = 60
DEFAULT_TOKEN_LIFETIME_SECONDS: Final = 3600

# Static model catalog served by /v1/models
SUPPORTED_MODELS: Final[tuple[str, ...]] = (
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-3-flash-preview",
    "gemini-3-pro-preview",
)
MODEL_OWNER: Final = "google"

SSE_DATA_PREFIX: Final = "data:"
SSE_DONE_MARKER: Final = "[DONE]"
