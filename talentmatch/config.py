import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Environment detection
IS_CLOUD = os.getenv("CLOUD_RUN_JOB", "") != "" or os.getenv("DATABASE_URL", "") != ""

# Paths (local development only)
DATA_DIR = Path("data")
DB_PATH = DATA_DIR / "talentmatch.db"
CHROMA_PATH = DATA_DIR / "chroma_db"

# Database (PostgreSQL in the cloud, SQLite locally)
DATABASE_URL = os.getenv("DATABASE_URL")
DB_POOL_MIN = int(os.getenv("DB_POOL_MIN", "1"))
DB_POOL_MAX = int(os.getenv("DB_POOL_MAX", "10"))

# Candidate profile index
VECTOR_BACKEND = os.getenv("VECTOR_BACKEND", "pinecone" if IS_CLOUD else "chroma")
PINECONE_API_KEY = os.getenv("PINECONE_API_KEY")
PINECONE_INDEX = os.getenv("PINECONE_INDEX", "cv-candidates")
CHROMA_COLLECTION = "cv_candidates"

# Embedding model (fastembed uses ONNX Runtime)
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "384"))

# LLM settings (Groq)
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = "llama-3.3-70b-versatile"
LLM_TEMPERATURE = 0.1

# Queue (Redis list)
REDIS_URL = os.getenv("REDIS_URL")
MATCHING_QUEUE_NAME = os.getenv("MATCHING_QUEUE_NAME", "vacancy-matching-queue")
QUEUE_MAX_DEQUEUE_COUNT = 5
QUEUE_POLL_TIMEOUT = 5  # seconds

# Activity log sink
ACTIVITY_LOG_URL = os.getenv("ACTIVITY_LOG_URL")
ACTIVITY_LOG_TIMEOUT = 10

# Matching settings
VACANCY_MATCH_TOP_K = 20
HYBRID_ALPHA = 0.8  # Weight of the dense score in the fused score
HYBRID_CANDIDATE_POOL = 2  # Dense neighbours fetched per requested result
MAX_EVALUATION_WORKERS = 20
PROJECTS_MAX_CHARS = 1000
EVALUATION_VERSION = 1  # Bump when the prompt or result schema changes
ESTIMATED_COMPLETION_TIME = "10-15 seconds"
