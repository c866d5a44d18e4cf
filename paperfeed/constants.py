"""
Constants and configuration values for the paper feed.
"""

# arXiv Feed Source
ARXIV_API_URL = "http://export.arxiv.org/api/query"
ARXIV_AI_CATEGORIES = ["cs.AI", "cs.LG", "cs.CL", "cs.CV", "cs.NE", "stat.ML"]
ARXIV_DEFAULT_SORT_BY = "submittedDate"
ARXIV_DEFAULT_SORT_ORDER = "descending"
ARXIV_HTTP_TIMEOUT = 30.0

# Feed category ids exposed to clients -> arXiv category
CATEGORY_MAP = {
    "ml": "cs.LG",
    "nlp": "cs.CL",
    "vision": "cs.CV",
    "ai": "cs.AI",
    "robotics": "cs.RO",
    "neural": "cs.NE",
}
CATEGORY_LISTING = [
    {"id": "ml", "name": "Machine Learning", "arxiv": ["cs.LG", "stat.ML"]},
    {"id": "nlp", "name": "NLP", "arxiv": ["cs.CL"]},
    {"id": "vision", "name": "Computer Vision", "arxiv": ["cs.CV"]},
    {"id": "ai", "name": "AI General", "arxiv": ["cs.AI"]},
    {"id": "robotics", "name": "Robotics", "arxiv": ["cs.RO"]},
    {"id": "neural", "name": "Neural Networks", "arxiv": ["cs.NE"]},
]

# Feed Cache
FEED_CACHE_TTL = 1800  # 30 minutes
SEARCH_CACHE_TTL = 900  # 15 minutes
DEFAULT_FEED_FETCH_COUNT = 15
SEARCH_FETCH_COUNT = 10
STORE_FEED_LIMIT = 50
CORPUS_LIMIT = 500
DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100

# Durable Store
STORE_ITEM_TTL = 90 * 86400  # 90 days
STORE_WRITE_BATCH_SIZE = 25
DEDUP_BATCH_SIZE = 100

# Similarity
TAG_MATCH_WEIGHT = 2
CATEGORY_MATCH_WEIGHT = 1
TAG_SCORE_NORMALIZER = 10.0
SIMILAR_EMBEDDING_THRESHOLD = 0.3
SIMILAR_TAGS_THRESHOLD = 0.3
SIMILAR_DEFAULT_TOP_K = 3
SCORE_DECIMALS = 2

# Semantic Search
SEMANTIC_RELEVANCE_THRESHOLD = 0.25
SEMANTIC_MAX_RESULTS = 20
SEMANTIC_DEFAULT_LIMIT = 10
SEMANTIC_QUERY_MAX_CHARS = 500
SEMANTIC_SUMMARY_TITLES = 5

# Embeddings
EMBEDDING_DIMENSION = 1024
EMBEDDING_TEXT_MAX_CHARS = 8000
EMBEDDING_MIN_CLIP = 1e-9
EMBEDDING_HTTP_TIMEOUT = 30.0
EMBEDDING_DEFAULT_MODEL = "text-embedding-3-large"
EMBEDDING_DEFAULT_URL = "https://api.openai.com/v1/embeddings"

# Enrichment
SUMMARY_BATCH_SIZE = 5  # Papers per summarization request
SUMMARY_BATCH_DELAY = 1.0  # Seconds between summarization requests
SUMMARY_TOKENS_PER_PAPER = 250
ABSTRACT_MAX_CHARS = 600
HEADLINE_FALLBACK_CHARS = 60
FALLBACK_TAG_COUNT = 3
SUMMARY_TAG_VOCABULARY = [
    "LLM",
    "Vision",
    "NLP",
    "Efficiency",
    "Training",
    "Benchmarks",
    "Multimodal",
    "RL",
    "Safety",
    "Data",
]

# LLM Configuration
LLM_API_URL = "https://api.anthropic.com/v1/messages"
LLM_API_VERSION = "2023-06-01"
LLM_DEFAULT_MODEL = "claude-3-5-haiku-20241022"
LLM_TEMPERATURE = 0.2
LLM_VALIDATION_MAX_TOKENS = 200
LLM_SEARCH_SUMMARY_MAX_TOKENS = 100
LLM_MAX_RETRIES = 3
LLM_429_BACKOFF_BASE = 2.0  # Seconds; doubled per attempt
LLM_429_BACKOFF_MAX = 30.0
LLM_REQUESTS_PER_MINUTE = 50
LLM_HTTP_CONNECT_TIMEOUT = 10.0
LLM_HTTP_READ_TIMEOUT = 60.0
LLM_HTTP_WRITE_TIMEOUT = 10.0
LLM_HTTP_POOL_TIMEOUT = 5.0

# Ingest Job
INGEST_TARGET_PAPERS = 100
INGEST_PAGE_SIZE = 50  # arXiv API page size
INGEST_PAGE_DELAY = 3.0  # Seconds between arXiv requests
