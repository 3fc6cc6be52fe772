import os

# Base directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Paths
LOG_FILE = os.path.join(BASE_DIR, "launch.log")
QUESTION_DIR = os.path.join(BASE_DIR, "JEE Mains")

# Server
DEFAULT_HOST = os.getenv("HOST", "0.0.0.0")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))

# Database
DATABASE_URL = os.getenv(
    "CBT_DATABASE_URL", f"sqlite:///{os.path.join(BASE_DIR, 'cbt.db')}"
)
STORE_TIMEOUT = float(os.getenv("CBT_STORE_TIMEOUT", "5.0"))  # seconds to wait for a write lock
MAX_WRITE_RETRIES = 5      # optimistic version retries per attempt write

# Paper / marking scheme
QUESTIONS_PER_SET = 90
MIN_YEAR = 2000
CORRECT_MARKS = 4
INCORRECT_MARKS = -1
UNANSWERED_MARKS = 0

# Exam clock
EXAM_DURATION_MINUTES = int(os.getenv("CBT_EXAM_DURATION_MINUTES", "180"))
