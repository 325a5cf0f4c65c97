MAX_TOKEN_COUNT = 10_000_000_000
MAX_BATCH_SIZE = 100
MAX_REQUEST_BODY_BYTES = 1_048_576

DEFAULT_ENCODING = "cl100k_base"
# chat framing: <|start|>{role}\n{content}<|end|>\n per message, plus the
# assistant reply primer
TOKENS_PER_MESSAGE = 4
REPLY_PRIMING_TOKENS = 3
