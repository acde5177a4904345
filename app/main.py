from dotenv import load_dotenv

from infrastructure.logging import get_module_logger
from server import server

load_dotenv()

logger = get_module_logger()

# Entry point for uvicorn: `uvicorn main:server_app`
server_app = server.handler
