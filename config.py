import json
import logging
import os

logger = logging.getLogger(__name__)

# Paths for credentials files
SECRETS_FOLDER = "secrets"
CREDENTIALS_PATH = os.path.join(SECRETS_FOLDER, "credentials.json")

ASSISTANT_NAME = "ERA"

# Console/demo identity of the manager talking to the assistant
MANAGER_EMAIL = os.getenv("ERA_MANAGER_EMAIL", "manager@example.com")
MANAGER_NAME = os.getenv("ERA_MANAGER_NAME", "Manager")

# Email settings
SKIP_SENDING_EMAILS = os.getenv("SKIP_SENDING_EMAILS", "true").lower() == "true"  # Set to false to send emails

# Calendar settings
DEFAULT_TIMEZONE = os.getenv("ERA_DEFAULT_TIMEZONE", "America/New_York")
CALENDAR_DAYS_AHEAD = 7
WORKING_HOURS_START = 9   # 9 AM
WORKING_HOURS_END = 17    # 5 PM
MEETING_DURATION_MINUTES = 30
TOP_SLOT_COUNT = 3
REMINDER_MINUTES = 15
DEFAULT_TOPIC = "HR Discussion"

# Conversation state settings
MAX_HISTORY_LENGTH = 10                 # Keep last 10 messages
STATE_TIMEOUT_SECONDS = 30 * 60         # 30 minutes
SWEEP_INTERVAL_SECONDS = 5 * 60         # Every 5 minutes

# Timeouts for every call leaving the process
COLLABORATOR_TIMEOUT_SECONDS = float(os.getenv("ERA_COLLABORATOR_TIMEOUT", "10"))

# Intent detection (semantic tier is opt-in)
INTENT_DETECTION_ENABLED = os.getenv("INTENT_DETECTION_ENABLED", "false").lower() == "true"
INTENT_DETECTION_TIMEOUT_SECONDS = float(os.getenv("INTENT_DETECTION_TIMEOUT", "3"))

GEMINI_MODEL = "gemini-2.0-flash"

# Microsoft Graph (calendar and mail provider)
GRAPH_API_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_AUTHORITY_URL = "https://login.microsoftonline.com"

GOOGLE_GEMINI_API_KEY = None
GRAPH_TENANT_ID = None
GRAPH_CLIENT_ID = None
GRAPH_CLIENT_SECRET = None

if os.path.exists(CREDENTIALS_PATH):
    try:
        with open(CREDENTIALS_PATH, 'r') as f:
            creds = json.load(f)
            GOOGLE_GEMINI_API_KEY = creds.get("GOOGLE_GEMINI_API_KEY")
            GRAPH_TENANT_ID = creds.get("GRAPH_TENANT_ID")
            GRAPH_CLIENT_ID = creds.get("GRAPH_CLIENT_ID")
            GRAPH_CLIENT_SECRET = creds.get("GRAPH_CLIENT_SECRET")
    except json.JSONDecodeError:
        logger.error("Could not decode JSON from %s", CREDENTIALS_PATH)
    except OSError as e:
        logger.error("An error occurred while loading credentials: %s", e)

# Environment variables win over the credentials file
GOOGLE_GEMINI_API_KEY = os.getenv("GOOGLE_GEMINI_API_KEY", GOOGLE_GEMINI_API_KEY)
GRAPH_TENANT_ID = os.getenv("GRAPH_TENANT_ID", GRAPH_TENANT_ID)
GRAPH_CLIENT_ID = os.getenv("GRAPH_CLIENT_ID", GRAPH_CLIENT_ID)
GRAPH_CLIENT_SECRET = os.getenv("GRAPH_CLIENT_SECRET", GRAPH_CLIENT_SECRET)
