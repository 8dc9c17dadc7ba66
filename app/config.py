import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./marketplace.db")

# Frontend base URL (CORS default)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Timezone used when a professional has none configured
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")

# Scheduling engine tuning
# A working day with more blocked time than this is unusable for days-mode jobs
PARTIAL_BLOCK_THRESHOLD_HOURS = float(os.getenv("PARTIAL_BLOCK_THRESHOLD_HOURS", "4"))
# Earliest proposal must finish within execution_days * factor calendar days
EARLIEST_THROUGHPUT_FACTOR = float(os.getenv("EARLIEST_THROUGHPUT_FACTOR", "2.0"))
# Target ceiling for the shortest-throughput proposal (best found is used when unreachable)
SHORTEST_THROUGHPUT_FACTOR = float(os.getenv("SHORTEST_THROUGHPUT_FACTOR", "1.2"))
SEARCH_HORIZON_DAYS = int(os.getenv("SEARCH_HORIZON_DAYS", "180"))
SLOT_INCREMENT_MINUTES = int(os.getenv("SLOT_INCREMENT_MINUTES", "30"))
DEFAULT_MIN_OVERLAP_PERCENTAGE = float(os.getenv("DEFAULT_MIN_OVERLAP_PERCENTAGE", "70"))
# Bookings at or under this many execution hours only block their execution window
SHORT_BOOKING_THRESHOLD_HOURS = float(os.getenv("SHORT_BOOKING_THRESHOLD_HOURS", "4"))
# Working-day length assumed when converting an hours buffer on a non-working day
DEFAULT_BUFFER_DAY_HOURS = float(os.getenv("DEFAULT_BUFFER_DAY_HOURS", "8"))

# Booking statuses that no longer hold a resource's calendar
TERMINAL_BOOKING_STATUSES = frozenset({"completed", "cancelled", "refunded"})
