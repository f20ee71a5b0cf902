from pydantic_settings import BaseSettings
from pathlib import Path

# Get the project root directory (parent of memoracard folder)
PROJECT_ROOT = Path(__file__).parent.parent

class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""
    database_url: str = "sqlite:///" + str(PROJECT_ROOT / "memoracard.db")
    sql_echo: bool = False
    
    # Root log level used by the CLI (library modules never configure handlers)
    log_level: str = "WARNING"
    
    class Config:
        env_file = str(PROJECT_ROOT / ".env")
        env_prefix = "MEMORACARD_"

settings = Settings()
