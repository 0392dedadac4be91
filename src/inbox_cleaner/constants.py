"""Constants for Inbox Cleaner."""

from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path.home() / ".inbox-cleaner"
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
TOKEN_PATH = CONFIG_DIR / "token.json"
STORE_DB_PATH = CONFIG_DIR / "inbox.db"
TRASH_LOG_PATH = CONFIG_DIR / "trash_log.json"
CONFIG_FILE_PATH = CONFIG_DIR / "config.json"

# --- Gmail API ---
SCOPES = ["https://www.googleapis.com/auth/gmail.modify"]
PAGE_SIZE = 500  # messages per list page (API maximum)
FETCH_CHUNK_SIZE = 50  # metadata gets per HTTP batch
MUTATION_CHUNK_SIZE = 100  # ids per batchModify / batchDelete call
RATE_LIMIT_PER_SECOND = 25.0
METADATA_HEADERS = ["From", "Subject", "Date", "List-Unsubscribe", "List-Unsubscribe-Post"]

# System label ids
LABEL_SENT = "SENT"
LABEL_INBOX = "INBOX"
LABEL_TRASH = "TRASH"
USER_LABEL_PREFIX = "Label_"

# --- Scan scopes ---
SCOPE_INBOX = "inbox"
SCOPE_ALL = "all"
SCAN_SCOPES = (SCOPE_INBOX, SCOPE_ALL)
SCOPE_QUERIES = {
    SCOPE_INBOX: "in:inbox",
    SCOPE_ALL: "-in:trash -in:spam",
}

# --- Mutation actions ---
ACTION_TRASH = "trash"
ACTION_DELETE = "delete"
ACTION_ARCHIVE = "archive"
MUTATION_ACTIONS = (ACTION_TRASH, ACTION_DELETE, ACTION_ARCHIVE)
REMOVING_ACTIONS = (ACTION_TRASH, ACTION_DELETE)

# --- Categories ---
CATEGORY_PEOPLE = "People"
CATEGORY_OTHER = "Other"
AI_CATEGORIES = [
    "People",
    "Newsletters",
    "Shopping",
    "Social Media",
    "Finance",
    "Travel",
    "Food",
    "Entertainment",
    "Work",
    "Notifications",
    "Other",
]

# --- AI classification ---
DEFAULT_AI_MODEL = "claude-3-5-haiku-latest"
AI_BATCH_SIZE = 50  # senders per classification request
AI_BATCH_DELAY_SECONDS = 0.5
AI_MAX_TOKENS = 1024

# --- Unsubscribe ---
DEFAULT_UNSUBSCRIBE_SUBJECT = "Unsubscribe"
DEFAULT_UNSUBSCRIBE_BODY = "Please unsubscribe me from this mailing list."
ONE_CLICK_TIMEOUT_SECONDS = 15
