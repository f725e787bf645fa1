"""Application constants."""

# Display formatting
SEPARATOR_LINE = "=" * 60

# Sync run status values
SYNC_STATUS_RUNNING = "running"
SYNC_STATUS_SUCCESS = "success"
SYNC_STATUS_FAILED = "failed"

SYNC_STATUSES = [SYNC_STATUS_RUNNING, SYNC_STATUS_SUCCESS, SYNC_STATUS_FAILED]

# Sync modes
SYNC_MODE_INCREMENTAL = "incremental"
SYNC_MODE_INITIAL = "initial"

# AI relevance tiers (highest first)
RELEVANCE_HIGH = "Alto"
RELEVANCE_MEDIUM = "Médio"
RELEVANCE_LOW = "Baixo"

RELEVANCE_TIERS = [RELEVANCE_HIGH, RELEVANCE_MEDIUM, RELEVANCE_LOW]

# Variants the model tends to answer with
RELEVANCE_ALIASES = {
    "alto": RELEVANCE_HIGH,
    "alta": RELEVANCE_HIGH,
    "médio": RELEVANCE_MEDIUM,
    "medio": RELEVANCE_MEDIUM,
    "média": RELEVANCE_MEDIUM,
    "media": RELEVANCE_MEDIUM,
    "baixo": RELEVANCE_LOW,
    "baixa": RELEVANCE_LOW,
}

# Relevance feedback
VOTE_UP = 1
VOTE_DOWN = -1

# Chat replies
CHAT_NOT_FOUND_REPLY = (
    "Não encontrei informações sobre isso nos documentos processados desta licitação."
)
