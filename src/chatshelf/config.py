"""Central configuration for paths and constants."""

import os
from pathlib import Path

# Data directory — override with CHATSHELF_DATA_DIR env var
DATA_DIR = Path(
    os.environ.get("CHATSHELF_DATA_DIR", str(Path.home() / ".chatshelf"))
)

# Key-value store
STORE_FILENAME = "chatshelf.db"
STORAGE_KEY = "chat-app:conversations"
ACTIVE_ID_STORAGE_KEY = "chat-app:activeConversationId"
STORAGE_VERSION = 1  # Bump when the snapshot shape changes; old snapshots are discarded

# Conversation naming
PLACEHOLDER_TITLE = "New conversation"
FALLBACK_CHAT_TITLE = "New Chat"
ORDINALS = (
    "First",
    "Second",
    "Third",
    "Fourth",
    "Fifth",
    "Sixth",
    "Seventh",
    "Eighth",
    "Ninth",
    "Tenth",
)

# Conversations present before anything has been stored
SEED_CONVERSATIONS = (
    ("c1", "First conversation"),
    ("c2", "Second conversation"),
)

# Stub reply latency, in seconds
REPLY_MIN_DELAY = 0.5
REPLY_MAX_DELAY = 0.8


def store_path(data_dir: Path = DATA_DIR) -> Path:
    return data_dir / STORE_FILENAME
