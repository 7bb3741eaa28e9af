import os
from dotenv import load_dotenv

# Load .env from the working directory
load_dotenv()

DEFAULT_STAGE = os.getenv("SFN_COMPILER_STAGE", "dev")
DEFAULT_REGION = os.getenv("SFN_COMPILER_REGION", os.getenv("AWS_REGION", "us-east-1"))

# Reject task resources with no known permission template instead of granting a broad wildcard
STRICT_IAM = os.getenv("SFN_COMPILER_STRICT_IAM", "false").lower() in ("1", "true", "yes")

EXECUTION_POLL_INTERVAL = float(os.getenv("SFN_COMPILER_POLL_INTERVAL", "5"))
CLIENT_READ_TIMEOUT = int(os.getenv("SFN_COMPILER_READ_TIMEOUT", "60"))
CLIENT_CONNECT_TIMEOUT = int(os.getenv("SFN_COMPILER_CONNECT_TIMEOUT", "10"))
